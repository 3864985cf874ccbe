"""tasknest client core.

Attachment-aware task content and session liveness for a task-management app
backed by a hosted REST/auth/storage backend.

Example usage:
    from tasknest import TaskNest, ContentKind

    async with TaskNest() as nest:
        await nest.sign_in(email="user@example.com", password="password")
        session = await nest.edit(ContentKind.SUBTASK, "subtask-id")
        await session.attach(data, "report.pdf", "application/pdf")
        await session.save("Updated notes")
"""

from tasknest.tasknest import TaskNest
from tasknest.client import Client
from tasknest.exceptions import (
    TaskNestError,
    AuthenticationError,
    AuthRequiredError,
    APIError,
    ConfigurationError,
    ValidationError,
    NetworkError,
    StorageError,
    StorageWriteError,
    StorageDeleteError,
    InvalidStateError,
)

# Models
from tasknest.models.attachment import AttachmentRef
from tasknest.models.session import Session, User
from tasknest.models.task import ContentKind, ContentRecord, TaskDocument

# Attachments
from tasknest.attachments import codec
from tasknest.attachments.manager import ContentAttachmentManager, EditSession, EditState
from tasknest.attachments.store import AttachmentStore

# Auth
from tasknest.auth.liveness import LivenessConfig, LivenessController

__version__ = "0.1.0"

__all__ = [
    # Main entry point
    "TaskNest",
    "Client",
    # Exceptions
    "TaskNestError",
    "AuthenticationError",
    "AuthRequiredError",
    "APIError",
    "ConfigurationError",
    "ValidationError",
    "NetworkError",
    "StorageError",
    "StorageWriteError",
    "StorageDeleteError",
    "InvalidStateError",
    # Models
    "AttachmentRef",
    "Session",
    "User",
    "ContentKind",
    "ContentRecord",
    "TaskDocument",
    # Attachments
    "codec",
    "ContentAttachmentManager",
    "EditSession",
    "EditState",
    "AttachmentStore",
    # Auth
    "LivenessConfig",
    "LivenessController",
]
