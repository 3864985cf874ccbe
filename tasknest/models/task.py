from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class ContentKind(str, Enum):
    """Which table a content field lives in."""
    TASK = 'tasks'
    SUBTASK = 'subtasks'


class ContentRecord(BaseModel):
    """
    A task or subtask row, reduced to what the content core touches.

    ``content`` is Markdown with embedded attachment references and is read and
    written verbatim.
    """
    id: str
    name: str
    content: str | None = None
    user_id: str | None = None
    updated_at: str | None = None

    @property
    def text(self) -> str:
        return self.content or ''


class SubtaskItem(ContentRecord):
    order_index: int = 0
    complete_date: datetime | None = None
    skipped: bool = False


class SubtaskGroup(BaseModel):
    id: str
    name: str
    order_index: int = 0
    subtasks: list[SubtaskItem] = Field(default_factory=list)


class TaskDocument(ContentRecord):
    """A task with its subtasks and groups, as needed for export."""
    due_date: datetime | None = None
    complete_date: datetime | None = None
    subtasks: list[SubtaskItem] = Field(default_factory=list)
    subtask_groups: list[SubtaskGroup] = Field(default_factory=list)

    def ungrouped_subtasks(self) -> list[SubtaskItem]:
        grouped = {s.id for group in self.subtask_groups for s in group.subtasks}
        return sorted((s for s in self.subtasks if s.id not in grouped), key=lambda s: s.order_index)

    def sorted_groups(self) -> list[SubtaskGroup]:
        return sorted(self.subtask_groups, key=lambda g: g.order_index)
