"""Tests for the content attachment manager and edit sessions."""
import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from tasknest.attachments import codec
from tasknest.attachments.manager import ContentAttachmentManager, EditSession, EditState, user_message
from tasknest.attachments.store import AttachmentStore
from tasknest.exceptions import (
    APIError,
    AuthRequiredError,
    InvalidStateError,
    NetworkError,
    StorageDeleteError,
    StorageWriteError,
)
from tasknest.models.attachment import AttachmentRef
from tasknest.models.task import ContentKind, ContentRecord

from ..fakes import PUBLIC_BASE, FakeAuthSession, make_token

U1 = f'{PUBLIC_BASE}/user-123/one.png'
U2 = f'{PUBLIC_BASE}/user-123/two.pdf'


def make_ref(url: str, name: str, mime: str = 'application/octet-stream') -> AttachmentRef:
    return AttachmentRef(url=url, display_name=name, size_bytes=10, mime_type=mime)


@pytest.fixture
def mock_store():
    """Create a mock AttachmentStore handing out U1 then U2."""
    store = MagicMock()
    store.upload = AsyncMock(side_effect=[
        make_ref(U1, 'a.png', 'image/png'),
        make_ref(U2, 'b.pdf', 'application/pdf'),
    ])
    store.remove = AsyncMock()
    return store


@pytest.fixture
def writer():
    """Create a content writer that echoes what it persists."""
    return AsyncMock(side_effect=lambda content: content)


def make_session(store, writer, content: str = '', owner: str | None = 'user-123') -> EditSession:
    return EditSession(content, store, lambda: owner, writer)


class TestEditSessionLifecycle:
    """Tests for the edit session state machine."""

    def test_starts_viewing(self, mock_store, writer):
        """A new session should be in VIEWING."""
        assert make_session(mock_store, writer).state is EditState.VIEWING

    def test_begin_edit_lists_existing(self, mock_store, writer):
        """Entering EDITING should recover existing references."""
        session = make_session(mock_store, writer, f'notes\n\n<!-- attachment: {U1} -->')

        existing = session.begin_edit()

        assert session.state is EditState.EDITING
        assert [r.url for r in existing] == [U1]
        assert existing[0].size_bytes == 0
        assert session.newly_attached == []

    @pytest.mark.asyncio
    async def test_two_uploads_then_save(self, mock_store, writer):
        """Saving two uploads into empty content should persist exactly two sentinels."""
        session = make_session(mock_store, writer)
        session.begin_edit()
        await session.attach(b'png', 'a.png', 'image/png')
        await session.attach(b'pdf', 'b.pdf', 'application/pdf')

        persisted = await session.save('')

        assert persisted == f'<!-- attachment: {U1} -->\n<!-- attachment: {U2} -->'
        assert codec.extract(persisted) == [U1, U2]
        writer.assert_awaited_once_with(persisted)
        assert session.state is EditState.VIEWING
        assert session.newly_attached == []
        assert session.content == persisted

    @pytest.mark.asyncio
    async def test_save_appends_after_text(self, mock_store, writer):
        """Edited text should be kept and references appended after it."""
        session = make_session(mock_store, writer, 'old')
        session.begin_edit()
        await session.attach(b'png', 'a.png', 'image/png')

        persisted = await session.save('new text')

        assert persisted == f'new text\n\n<!-- attachment: {U1} -->'

    @pytest.mark.asyncio
    async def test_save_without_uploads_keeps_text(self, mock_store, writer):
        """Saving with nothing attached should persist the text as-is."""
        session = make_session(mock_store, writer, 'old')
        session.begin_edit()
        assert await session.save('new') == 'new'

    @pytest.mark.asyncio
    async def test_attachments_include_existing_and_new(self, mock_store, writer):
        """The attachment list should show existing refs followed by new uploads."""
        session = make_session(mock_store, writer, f'![x]({U2})')
        mock_store.upload.side_effect = [make_ref(U1, 'a.png', 'image/png')]
        session.begin_edit()
        await session.attach(b'png', 'a.png', 'image/png')

        assert [r.url for r in session.attachments] == [U2, U1]

    @pytest.mark.asyncio
    async def test_detach_does_not_delete(self, mock_store, writer):
        """Removing a new attachment before save should not touch the store."""
        session = make_session(mock_store, writer)
        session.begin_edit()
        await session.attach(b'png', 'a.png', 'image/png')
        await session.attach(b'pdf', 'b.pdf', 'application/pdf')

        assert session.detach(U1) is True
        assert session.detach('https://nowhere/x') is False
        persisted = await session.save('')

        assert codec.extract(persisted) == [U2]
        mock_store.remove.assert_not_called()

    @pytest.mark.asyncio
    async def test_discard_leaves_orphans(self, mock_store, writer):
        """Discarding should not persist and should report orphaned uploads."""
        session = make_session(mock_store, writer, 'original')
        session.begin_edit()
        await session.attach(b'png', 'a.png', 'image/png')

        orphans = session.discard()

        assert [r.url for r in orphans] == [U1]
        assert session.state is EditState.VIEWING
        assert session.content == 'original'
        writer.assert_not_awaited()
        mock_store.remove.assert_not_called()

    @pytest.mark.asyncio
    async def test_failed_upload_leaves_list_unchanged(self, mock_store, writer):
        """A failed upload should propagate and add nothing."""
        mock_store.upload.side_effect = StorageWriteError('Failed to upload file: denied')
        session = make_session(mock_store, writer)
        session.begin_edit()

        with pytest.raises(StorageWriteError):
            await session.attach(b'x', 'a.png', 'image/png')
        assert session.newly_attached == []
        assert session.state is EditState.EDITING

    @pytest.mark.asyncio
    async def test_attach_requires_identity(self, mock_store, writer):
        """Attaching without a signed-in user should fail before uploading."""
        session = make_session(mock_store, writer, owner=None)
        session.begin_edit()

        with pytest.raises(AuthRequiredError):
            await session.attach(b'x', 'a.png', 'image/png')
        mock_store.upload.assert_not_called()

    @pytest.mark.asyncio
    async def test_failed_save_stays_editing(self, mock_store):
        """A failed write should keep the session and its uploads."""
        failing_writer = AsyncMock(side_effect=APIError('HTTP 500: boom'))
        session = make_session(mock_store, failing_writer)
        session.begin_edit()
        await session.attach(b'png', 'a.png', 'image/png')

        with pytest.raises(APIError):
            await session.save('text')
        assert session.state is EditState.EDITING
        assert [r.url for r in session.newly_attached] == [U1]

    @pytest.mark.asyncio
    async def test_illegal_transitions(self, mock_store, writer):
        """Operations outside EDITING should be rejected."""
        session = make_session(mock_store, writer)
        with pytest.raises(InvalidStateError):
            await session.attach(b'x', 'a.png', 'image/png')
        with pytest.raises(InvalidStateError):
            await session.save('x')
        with pytest.raises(InvalidStateError):
            session.discard()
        session.begin_edit()
        with pytest.raises(InvalidStateError):
            session.begin_edit()


class TestUploadsDuringSave:
    """Uploads that complete while a save is being written."""

    @pytest.fixture
    def gate(self):
        return asyncio.Event()

    @pytest.fixture
    def slow_store(self, mock_store, gate):
        async def upload(*args):
            await gate.wait()
            return make_ref(U2, 'b.pdf', 'application/pdf')

        mock_store.upload = AsyncMock(side_effect=upload)
        return mock_store

    @pytest.mark.asyncio
    async def test_failed_save_keeps_upload_finished_meanwhile(self, slow_store, gate):
        """An upload completing during a failed write should be listed afterwards."""
        async def failing_writer(content):
            gate.set()
            await asyncio.sleep(0.01)
            raise APIError('HTTP 500: boom')

        session = make_session(slow_store, failing_writer)
        session.begin_edit()
        upload = asyncio.create_task(session.attach(b'pdf', 'b.pdf', 'application/pdf'))
        await asyncio.sleep(0)

        with pytest.raises(APIError):
            await session.save('text')
        ref = await upload

        assert session.state is EditState.EDITING
        assert session.newly_attached == [ref]
        assert codec.extract(codec.encode('text', session.newly_attached)) == [U2]

    @pytest.mark.asyncio
    async def test_successful_save_excludes_upload_finished_meanwhile(self, slow_store, gate):
        """A successful write only carries uploads listed when the save began."""
        async def writer(content):
            gate.set()
            await asyncio.sleep(0.01)
            return content

        session = make_session(slow_store, writer)
        session.begin_edit()
        upload = asyncio.create_task(session.attach(b'pdf', 'b.pdf', 'application/pdf'))
        await asyncio.sleep(0)

        persisted = await session.save('text')
        await upload

        assert persisted == 'text'
        assert session.state is EditState.VIEWING
        assert session.newly_attached == []


class TestEndToEndWithStore:
    """Edit session over a real AttachmentStore and a mocked S3 client."""

    @pytest.mark.asyncio
    async def test_round_trip_through_store(self, writer):
        """Uploaded refs should be recoverable from the saved content."""
        s3 = MagicMock()
        s3.public_url.side_effect = lambda key: f'{PUBLIC_BASE}/{key}'
        session = make_session(AttachmentStore(s3), writer)
        session.begin_edit()
        first = await session.attach(b'png', 'image.png', 'image/png')
        second = await session.attach(b'pdf', 'report.pdf', 'application/pdf')

        persisted = await session.save('')

        assert codec.extract(persisted) == [first.url, second.url]
        assert all(url.startswith(f'{PUBLIC_BASE}/user-123/') for url in codec.extract(persisted))
        assert first.display_name.startswith('screenshot-')
        assert second.display_name == 'report.pdf'


class TestContentAttachmentManager:
    """Tests for ContentAttachmentManager."""

    @pytest.fixture
    def task_api(self, sample_subtask_data):
        api = MagicMock()
        api.get_record = AsyncMock(return_value=ContentRecord(**sample_subtask_data))
        api.update_content = AsyncMock(
            side_effect=lambda kind, record_id, content: ContentRecord(
                **{**sample_subtask_data, 'content': content}
            )
        )
        return api

    @pytest.mark.asyncio
    async def test_open_by_id_and_save(self, mock_store, task_api):
        """Saving should write the encoded content through the task API."""
        manager = ContentAttachmentManager(mock_store, task_api, FakeAuthSession(make_token()))

        session = await manager.open_by_id(ContentKind.SUBTASK, 'subtask-1')
        session.begin_edit()
        await session.attach(b'png', 'a.png', 'image/png')
        persisted = await session.save(session.content)

        assert persisted == f'Draft the summary\n\n<!-- attachment: {U1} -->'
        task_api.update_content.assert_awaited_once_with(ContentKind.SUBTASK, 'subtask-1', persisted)
        mock_store.upload.assert_awaited_once_with(b'png', 'a.png', 'image/png', 'user-123')

    @pytest.mark.asyncio
    async def test_signed_out_session_cannot_attach(self, mock_store, task_api):
        """Uploads should fail fast when the auth session holds no credential."""
        manager = ContentAttachmentManager(mock_store, task_api, FakeAuthSession(None))
        session = await manager.open_by_id(ContentKind.TASK, 'task-1')
        session.begin_edit()

        with pytest.raises(AuthRequiredError):
            await session.attach(b'x', 'a.png', 'image/png')
        mock_store.upload.assert_not_called()

    @pytest.mark.asyncio
    async def test_purge_attachments_removes_each(self, mock_store, task_api):
        """Purging should delete every referenced file and report failures."""
        mock_store.remove.side_effect = [None, StorageDeleteError('Failed to delete file: denied')]
        manager = ContentAttachmentManager(mock_store, task_api, FakeAuthSession(make_token()))

        failed = await manager.purge_attachments(codec.encode('text', [U1, U2]))

        assert failed == [U2]
        assert mock_store.remove.await_count == 2
        mock_store.remove.assert_any_await(U1, 'user-123')

    @pytest.mark.asyncio
    async def test_purge_requires_identity(self, mock_store, task_api):
        """Purging without a user should fail fast."""
        manager = ContentAttachmentManager(mock_store, task_api, FakeAuthSession(None))
        with pytest.raises(AuthRequiredError):
            await manager.purge_attachments(codec.encode('', [U1]))
        mock_store.remove.assert_not_called()


class TestUserMessage:
    """Tests for user_message."""

    @pytest.mark.parametrize('error,expected', [
        (AuthRequiredError('x'), 'You need to be signed in to manage attachments.'),
        (StorageWriteError('Failed to upload file: quota'), 'Upload failed: Failed to upload file: quota'),
        (StorageDeleteError('nope'), 'Delete failed: nope'),
        (NetworkError('down'), 'Network error. Please check your internet connection.'),
        (APIError('HTTP 500: boom'), 'Could not save changes: HTTP 500: boom'),
    ])
    def test_messages(self, error, expected):
        """Errors should map to readable messages."""
        assert user_message(error) == expected
