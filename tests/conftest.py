"""Shared fixtures for tasknest tests."""
import time

import pytest

from tasknest.utils.settings import Settings

from .fakes import BACKEND_URL, make_token


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at a fake backend and a temporary state file."""
    return Settings(
        TASKNEST_BACKEND_URL=BACKEND_URL,
        TASKNEST_ANON_KEY='anon-key',
        TASKNEST_S3_ACCESS_KEY='access',
        TASKNEST_S3_SECRET_KEY='secret',
        TASKNEST_STATE_FILE=str(tmp_path / 'storage.json'),
    )


@pytest.fixture
def sample_user_data():
    return {
        'id': 'user-123',
        'email': 'user@example.com',
        'role': 'authenticated',
        'created_at': '2026-01-01T00:00:00Z',
        'user_metadata': {},
    }


@pytest.fixture
def sample_session_data(sample_user_data):
    return {
        'access_token': make_token(),
        'token_type': 'bearer',
        'refresh_token': 'refresh-abc',
        'expires_in': 3600,
        'expires_at': int(time.time()) + 3600,
        'user': sample_user_data,
    }


@pytest.fixture
def sample_subtask_data():
    return {
        'id': 'subtask-1',
        'name': 'Write report',
        'content': 'Draft the summary',
        'user_id': 'user-123',
        'updated_at': '2026-01-02T00:00:00Z',
    }
