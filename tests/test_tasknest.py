"""Tests for the TaskNest orchestrator."""
import json
from unittest.mock import MagicMock

import pytest
import respx
from httpx import Response

from tasknest import TaskNest
from tasknest.attachments import codec
from tasknest.auth.liveness import LivenessConfig
from tasknest.auth.session import AUTH_TOKEN_KEY
from tasknest.exceptions import ConfigurationError
from tasknest.models.task import ContentKind, ContentRecord

from .fakes import BACKEND_URL, PUBLIC_BASE

QUIET = LivenessConfig(check_interval_ms=60_000, cleanup_interval_ms=60_000)


@pytest.fixture
def s3_client():
    s3 = MagicMock()
    s3.public_url.side_effect = lambda key: f'{PUBLIC_BASE}/{key}'
    return s3


@pytest.fixture
def nest(settings, s3_client):
    return TaskNest(settings, s3_client=s3_client, liveness_config=QUIET)


class TestTaskNest:
    """Tests for the TaskNest class."""

    @pytest.mark.asyncio
    async def test_sign_in_requires_credentials(self, nest, monkeypatch):
        """sign_in without arguments or env vars should raise ValueError."""
        monkeypatch.delenv('TASKNEST_EMAIL', raising=False)
        monkeypatch.delenv('TASKNEST_PASSWORD', raising=False)

        with pytest.raises(ValueError, match='TASKNEST_EMAIL'):
            await nest.sign_in()
        await nest.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_sign_in_from_env(self, nest, monkeypatch, sample_session_data, settings):
        """Credentials should fall back to the environment and the session should persist."""
        monkeypatch.setenv('TASKNEST_EMAIL', 'user@example.com')
        monkeypatch.setenv('TASKNEST_PASSWORD', 'password123')
        route = respx.post(f'{BACKEND_URL}/auth/v1/token').mock(
            return_value=Response(200, json=sample_session_data)
        )

        async with nest:
            session = await nest.sign_in()

        assert session.user.id == 'user-123'
        assert route.calls.last.request.url.params['grant_type'] == 'password'
        with open(settings.state_file) as f:
            assert AUTH_TOKEN_KEY in json.load(f)

    @pytest.mark.asyncio
    async def test_restores_session_on_enter(self, settings, s3_client, sample_session_data):
        """A session mirrored by a previous run should be restored."""
        with open(settings.state_file, 'w') as f:
            json.dump({AUTH_TOKEN_KEY: json.dumps(sample_session_data)}, f)

        async with TaskNest(settings, s3_client=s3_client, liveness_config=QUIET) as nest:
            assert nest.auth.has_credential
            assert nest.liveness.is_running
        assert not nest.liveness.is_running

    @pytest.mark.asyncio
    @respx.mock
    async def test_edit_attach_save(self, nest, s3_client, sample_session_data, sample_subtask_data):
        """Editing a subtask should upload, encode and write the content."""
        respx.post(f'{BACKEND_URL}/auth/v1/token').mock(return_value=Response(200, json=sample_session_data))
        respx.get(f'{BACKEND_URL}/rest/v1/subtasks').mock(return_value=Response(200, json=[sample_subtask_data]))
        patch = respx.patch(f'{BACKEND_URL}/rest/v1/subtasks').mock(
            side_effect=lambda request: Response(
                200, json=[{**sample_subtask_data, **json.loads(request.content)}]
            )
        )

        async with nest:
            await nest.sign_in('user@example.com', 'password123')
            session = await nest.edit(ContentKind.SUBTASK, 'subtask-1')
            ref = await session.attach(b'%PDF', 'notes.pdf', 'application/pdf')
            persisted = await session.save(session.content)

        key = s3_client.put_object.call_args.args[0]
        assert key.startswith('user-123/')
        assert codec.extract(persisted) == [ref.url]
        assert json.loads(patch.calls.last.request.content) == {'content': persisted}
        assert patch.calls.last.request.headers['authorization'] == f"Bearer {sample_session_data['access_token']}"

    @pytest.mark.asyncio
    async def test_attachments_need_s3_credentials(self, settings):
        """Without S3 credentials the attachment workflow cannot be built."""
        settings.s3_access_key = None
        nest = TaskNest(settings, liveness_config=QUIET)

        with pytest.raises(ConfigurationError):
            nest.attachments
        await nest.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_send_to_tracker(self, nest, sample_subtask_data):
        """Records should be pushed through the webhook proxy."""
        route = respx.post(f'{BACKEND_URL}/functions/v1/kanbandot-proxy').mock(
            return_value=Response(200, json={'success': True, 'result': {'id': 'card-1'}})
        )
        result = await nest.send_to_tracker(ContentRecord(**sample_subtask_data))

        assert result == {'id': 'card-1'}
        assert json.loads(route.calls.last.request.content) == {
            'title': 'Write report',
            'description': 'Draft the summary',
        }
        await nest.close()
