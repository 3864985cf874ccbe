from __future__ import annotations

from pydantic import BaseModel

ATTACHMENT_PATH_SEGMENT = '/subtask-attachments/'


class AttachmentRef(BaseModel):
    """
    A file uploaded to the object store and referenced from task or subtask content.

    ``size_bytes`` is only known right after an upload. References recovered by
    parsing existing content carry 0, since the size is never persisted in the text.
    """
    url: str
    display_name: str
    size_bytes: int = 0
    mime_type: str = 'application/octet-stream'

    @property
    def is_image(self) -> bool:
        return self.mime_type.startswith('image/')
