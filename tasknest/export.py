import re
import textwrap
from dataclasses import dataclass
from datetime import date, datetime

from loguru import logger
from PIL import Image, ImageDraw, ImageFont

from tasknest.attachments.codec import strip_for_display
from tasknest.models.task import SubtaskItem, TaskDocument
from tasknest.utils.io import build_path

# A4 at 150 dpi
PAGE_SIZE = (1240, 1754)
PAGE_RESOLUTION = 150.0
MARGIN = 120
WRAP_COLUMNS = 90

BLACK = (0, 0, 0)
GREY = (100, 100, 100)
LIGHT_GREY = (150, 150, 150)
GREEN = (34, 139, 34)


@dataclass(frozen=True)
class ExportLine:
    text: str
    size: int = 20
    color: tuple[int, int, int] = BLACK


def export_filename(task_name: str, today: date | None = None) -> str:
    """File name for an exported task, e.g. ``Plan_launch_20261018.pdf``."""
    today = today or date.today()
    safe_name = re.sub(r'[^a-z0-9]', '_', task_name, flags=re.IGNORECASE)[:50]
    return f"{safe_name}_{today.strftime('%Y%m%d')}.pdf"


def _subtask_lines(subtask: SubtaskItem, indent: str) -> list[ExportLine]:
    if subtask.complete_date:
        marker, color = '[x]', GREEN
    elif subtask.skipped:
        marker, color = '[-]', LIGHT_GREY
    else:
        marker, color = '[ ]', BLACK

    lines = [ExportLine(f'{indent}{marker} {subtask.name}', 22, color)]
    content = strip_for_display(subtask.text).strip()
    if content:
        lines.append(ExportLine(f'{indent}    {content}', 18, GREY))
    return lines


def build_export_lines(task: TaskDocument, exported_at: datetime | None = None) -> list[ExportLine]:
    """
    Lay a task out as plain text lines.

    Attachment markup is replaced through :func:`strip_for_display`, so images show
    as ``[image]`` and sentinels disappear.
    """
    lines = [ExportLine(task.name, 36)]
    lines.append(ExportLine(
        f"Status: {'Completed' if task.complete_date else 'In Progress'}",
        color=GREEN if task.complete_date else GREY
    ))
    if task.due_date:
        lines.append(ExportLine(f"Due Date: {task.due_date.strftime('%b %d, %Y')}"))
    if task.complete_date:
        lines.append(ExportLine(f"Completed: {task.complete_date.strftime('%b %d, %Y')}"))

    if task.content:
        lines.append(ExportLine(''))
        lines.append(ExportLine('Description', 24))
        lines.append(ExportLine(strip_for_display(task.content)))

    ungrouped = task.ungrouped_subtasks()
    groups = task.sorted_groups()
    if ungrouped or groups:
        lines.append(ExportLine(''))
        lines.append(ExportLine('Subtasks', 28))
        for subtask in ungrouped:
            lines.extend(_subtask_lines(subtask, ''))
        for group in groups:
            lines.append(ExportLine(''))
            lines.append(ExportLine(f'> {group.name}', 24, (50, 50, 50)))
            for subtask in sorted(group.subtasks, key=lambda s: s.order_index):
                lines.extend(_subtask_lines(subtask, '    '))

    exported_at = exported_at or datetime.now()
    lines.append(ExportLine(''))
    lines.append(ExportLine(f"Exported on {exported_at.strftime('%b %d, %Y %H:%M')}", 16, LIGHT_GREY))
    return lines


def _render_pages(lines: list[ExportLine]) -> list[Image.Image]:
    pages: list[Image.Image] = []
    page = draw = None
    y = MARGIN

    def new_page() -> None:
        nonlocal page, draw, y
        page = Image.new('RGB', PAGE_SIZE, 'white')
        draw = ImageDraw.Draw(page)
        pages.append(page)
        y = MARGIN

    new_page()
    for line in lines:
        font = ImageFont.load_default(size=line.size)
        wrapped: list[str] = []
        for paragraph in line.text.splitlines() or ['']:
            wrapped.extend(textwrap.wrap(paragraph, WRAP_COLUMNS) or [''])
        for text in wrapped:
            if y + line.size > PAGE_SIZE[1] - MARGIN:
                new_page()
            draw.text((MARGIN, y), text, fill=line.color, font=font)
            y += int(line.size * 1.4)
    return pages


def export_task_pdf(task: TaskDocument, directory: str, today: date | None = None) -> str:
    """
    Render a task to a multi-page PDF.

    :param task: Task with its subtasks and groups
    :param directory: Directory the PDF is written to (created if needed)
    :param today: Date used in the file name (default today)
    :return: Path of the written file
    """
    path = build_path(directory, export_filename(task.name, today))
    pages = _render_pages(build_export_lines(task))
    pages[0].save(path, 'PDF', resolution=PAGE_RESOLUTION, save_all=True, append_images=pages[1:])
    logger.debug(f"Exported task {task.id} to {path} ({len(pages)} page(s))")
    return path
