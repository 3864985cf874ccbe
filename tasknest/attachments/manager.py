"""
Edit-session workflow for a content field with attachments.

    VIEWING -> EDITING -> SAVING -> VIEWING
                       -> DISCARDING -> VIEWING

Uploads are durable as soon as they complete. Removing a newly attached file
before saving, or discarding the edit, leaves the object in the store
unreferenced (an orphan); nothing here deletes it.
"""
from collections.abc import Awaitable, Callable
from enum import Enum

from loguru import logger

from tasknest.api.task_api import TaskApi
from tasknest.attachments import codec
from tasknest.attachments.store import AttachmentStore
from tasknest.auth.session import AuthSession
from tasknest.exceptions import (
    APIError,
    AuthRequiredError,
    InvalidStateError,
    NetworkError,
    StorageDeleteError,
    StorageError,
    StorageWriteError,
    ValidationError,
)
from tasknest.models.attachment import AttachmentRef
from tasknest.models.task import ContentKind, ContentRecord

ContentWriter = Callable[[str], Awaitable[str]]


class EditState(str, Enum):
    VIEWING = 'viewing'
    EDITING = 'editing'
    SAVING = 'saving'
    DISCARDING = 'discarding'


def user_message(e: Exception) -> str:
    """Convert an attachment workflow error into a message for the user."""
    if isinstance(e, AuthRequiredError):
        return "You need to be signed in to manage attachments."
    elif isinstance(e, StorageWriteError):
        return f"Upload failed: {e}"
    elif isinstance(e, StorageDeleteError):
        return f"Delete failed: {e}"
    elif isinstance(e, ValidationError):
        return f"Invalid input: {e}"
    elif isinstance(e, NetworkError):
        return "Network error. Please check your internet connection."
    elif isinstance(e, APIError):
        return f"Could not save changes: {e}"
    return f"Unexpected error: {e}"


class EditSession:
    """
    One edit of one content field.

    Not shared between concurrent editors: the last save wins.
    """

    def __init__(
        self,
        content: str,
        store: AttachmentStore,
        owner_id: Callable[[], str | None],
        writer: ContentWriter
    ):
        """
        :param content: Persisted content the session starts from
        :param store: Attachment store used for uploads
        :param owner_id: Returns the signed-in user's id, or None
        :param writer: Persists new content and returns what was stored
        """
        self.content = content
        self.state = EditState.VIEWING
        self.existing: list[AttachmentRef] = []
        self.newly_attached: list[AttachmentRef] = []
        self._saving_uploads: list[AttachmentRef] = []
        self._store = store
        self._owner_id = owner_id
        self._writer = writer

    @property
    def attachments(self) -> list[AttachmentRef]:
        """Existing references followed by completed uploads of this session."""
        return [*self.existing, *self.newly_attached]

    def begin_edit(self) -> list[AttachmentRef]:
        """
        Enter EDITING and list the attachments already in the content.

        :return: References recovered from the persisted content
        """
        self._require(EditState.VIEWING)
        self.existing = codec.extract_refs(self.content)
        self.newly_attached = []
        self.state = EditState.EDITING
        return self.existing

    async def attach(self, data: bytes, file_name: str | None, mime_type: str | None = None) -> AttachmentRef:
        """
        Upload a file and list it once the upload completes.

        Failures propagate and leave the list unchanged.

        :raises AuthRequiredError: If nobody is signed in; no upload is attempted
        :raises StorageWriteError: If the object store rejects the upload
        """
        self._require(EditState.EDITING)
        owner_id = self._owner_id()
        if not owner_id:
            raise AuthRequiredError("User not authenticated")

        ref = await self._store.upload(data, file_name, mime_type, owner_id)
        if self.state is EditState.SAVING:
            self._saving_uploads.append(ref)
            return ref
        if self.state is not EditState.EDITING:
            logger.warning(f"Upload {ref.url} finished after the edit ended; left unreferenced")
            return ref
        self.newly_attached.append(ref)
        return ref

    def detach(self, url: str) -> bool:
        """
        Drop a newly attached file from this edit. The stored object is kept.

        :return: True if an entry was removed
        """
        self._require(EditState.EDITING)
        remaining = [ref for ref in self.newly_attached if ref.url != url]
        removed = len(remaining) != len(self.newly_attached)
        if removed:
            logger.debug(f"Detached {url}; object stays in storage unreferenced")
        self.newly_attached = remaining
        return removed

    async def save(self, content: str) -> str:
        """
        Append references for the newly attached files to content and persist it.

        On a failed write the session returns to EDITING with its attachments intact,
        including uploads that completed while the write was in flight. Those are
        not part of a successful save and are left unreferenced.

        :param content: Edited text
        :return: The persisted content
        """
        self._require(EditState.EDITING)
        self.state = EditState.SAVING
        self._saving_uploads = []
        encoded = codec.encode(content, self.newly_attached)
        try:
            persisted = await self._writer(encoded)
        except Exception:
            self.newly_attached.extend(self._saving_uploads)
            self._saving_uploads = []
            self.state = EditState.EDITING
            raise
        late, self._saving_uploads = self._saving_uploads, []
        for ref in late:
            logger.warning(f"Upload {ref.url} finished during save; left unreferenced")
        self.content = persisted
        self.newly_attached = []
        self.existing = []
        self.state = EditState.VIEWING
        return persisted

    def discard(self) -> list[AttachmentRef]:
        """
        Leave EDITING without persisting.

        :return: Uploads of this session that are now orphaned
        """
        self._require(EditState.EDITING)
        self.state = EditState.DISCARDING
        orphans, self.newly_attached = self.newly_attached, []
        if orphans:
            logger.warning(f"Discarded edit left {len(orphans)} uploaded file(s) unreferenced")
        self.existing = []
        self.state = EditState.VIEWING
        return orphans

    def _require(self, state: EditState) -> None:
        if self.state is not state:
            raise InvalidStateError(f"Operation requires {state.value} state, session is {self.state.value}")


class ContentAttachmentManager:
    """Opens edit sessions on task and subtask content and cleans up after deleted content."""

    def __init__(self, store: AttachmentStore, task_api: TaskApi, auth: AuthSession):
        self.store = store
        self.task_api = task_api
        self._auth = auth

    def open(self, kind: ContentKind, record: ContentRecord) -> EditSession:
        """Start an edit session on a record's content."""
        async def write(content: str) -> str:
            updated = await self.task_api.update_content(kind, record.id, content)
            return updated.text

        return EditSession(record.text, self.store, lambda: self._auth.current_user_id, write)

    async def open_by_id(self, kind: ContentKind, record_id: str) -> EditSession:
        record = await self.task_api.get_record(kind, record_id)
        return self.open(kind, record)

    async def purge_attachments(self, content: str) -> list[str]:
        """
        Delete every attachment referenced by content, e.g. after its task is deleted.

        Each deletion is attempted; failures are logged and reported back.

        :return: Urls that could not be deleted
        :raises AuthRequiredError: If nobody is signed in
        """
        owner_id = self._auth.current_user_id
        if not owner_id:
            raise AuthRequiredError("User not authenticated")

        failed: list[str] = []
        for url in codec.extract(content):
            try:
                await self.store.remove(url, owner_id)
            except StorageError as e:
                logger.warning(f"Could not delete attachment {url}: {e}")
                failed.append(url)
        return failed
