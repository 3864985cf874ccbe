"""
Attachment reference encoding inside Markdown content.

Content persisted by one client must be parsed identically by any other, so the
text formats here are a wire contract:

- written: one ``<!-- attachment: <url> -->`` line per file, appended after the
  existing text and separated from it by a blank line;
- read: the comment form above, plus legacy Markdown images ``![name](url)``
  whose url points into the attachment bucket.

Everything in this module is a pure function of its input.
"""
import re
from collections.abc import Iterable

from tasknest.models.attachment import ATTACHMENT_PATH_SEGMENT, AttachmentRef

SENTINEL_PATTERN = re.compile(r'<!--\s*attachment:\s*(\S+?)\s*-->')
LEGACY_IMAGE_PATTERN = re.compile(r'!\[[^\]]*\]\(([^)\s]+)\)')

# Display cleanup matches every image and comment, attachment or not
ANY_IMAGE_PATTERN = re.compile(r'!\[.*?\]\(.*?\)')
ANY_COMMENT_PATTERN = re.compile(r'<!--.*?-->', re.DOTALL)
ATTACHMENT_IMAGE_PATTERN = re.compile(r'!\[[^\]]*\]\([^)]*subtask-attachments[^)]*\)')
BLANK_LINES_PATTERN = re.compile(r'\n\n+')

IMAGE_EXTENSIONS = {'jpg', 'jpeg', 'png', 'gif', 'webp'}
DEFAULT_MIME_TYPE = 'application/octet-stream'
IMAGE_PLACEHOLDER = '[image]'


def sentinel(url: str) -> str:
    return f'<!-- attachment: {url} -->'


def is_attachment_url(url: str) -> bool:
    """True iff the url points into the attachment bucket."""
    return ATTACHMENT_PATH_SEGMENT in url


def encode(content: str, refs: Iterable[AttachmentRef | str]) -> str:
    """
    Append attachment sentinels to content.

    Existing text is never touched. With no refs the content comes back unchanged.

    :param content: Current Markdown content (may be empty)
    :param refs: Attachments (or bare urls) to append, in order
    :return: The content with one sentinel line per reference
    """
    lines = [sentinel(ref if isinstance(ref, str) else ref.url) for ref in refs]
    if not lines:
        return content
    block = '\n'.join(lines)
    return f'{content}\n\n{block}' if content else block


def extract(content: str) -> list[str]:
    """
    Recover attachment urls from content.

    Sentinels come first in document order, then legacy image urls; a url seen
    twice is kept at its first position only.
    """
    if not content:
        return []

    found = SENTINEL_PATTERN.findall(content)
    found.extend(url for url in LEGACY_IMAGE_PATTERN.findall(content) if is_attachment_url(url))

    seen: set[str] = set()
    urls: list[str] = []
    for url in found:
        if url not in seen:
            seen.add(url)
            urls.append(url)
    return urls


def mime_type_for_extension(extension: str) -> str:
    extension = extension.lower()
    if extension.startswith('image') or extension in IMAGE_EXTENSIONS:
        return f'image/{extension}'
    return DEFAULT_MIME_TYPE


def ref_from_url(url: str) -> AttachmentRef:
    """Rebuild an AttachmentRef from a url found in content. Size is unknown (0)."""
    file_name = url.split('/')[-1].split('?')[0] or 'attachment'
    extension = file_name.rsplit('.', 1)[-1]
    return AttachmentRef(
        url=url,
        display_name=file_name,
        size_bytes=0,
        mime_type=mime_type_for_extension(extension),
    )


def extract_refs(content: str) -> list[AttachmentRef]:
    return [ref_from_url(url) for url in extract(content)]


def strip_for_display(content: str) -> str:
    """
    Prepare content for consumers that cannot show attachments (e.g. PDF export).

    Every Markdown image becomes ``[image]`` and every HTML comment is removed.
    No other text is altered.
    """
    text = ANY_IMAGE_PATTERN.sub(IMAGE_PLACEHOLDER, content)
    return ANY_COMMENT_PATTERN.sub('', text)


def hide_attachments(content: str) -> str:
    """
    Remove attachment markup before rendering content as Markdown.

    Attachment images and sentinels are dropped, the blank lines they leave
    behind are collapsed and the result is trimmed. Non-attachment images stay.
    """
    text = ATTACHMENT_IMAGE_PATTERN.sub('', content)
    text = SENTINEL_PATTERN.sub('', text)
    return BLANK_LINES_PATTERN.sub('\n\n', text).strip()
