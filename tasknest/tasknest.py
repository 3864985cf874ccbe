import os
import sys

from loguru import logger

from tasknest.api.auth_api import AuthApi
from tasknest.api.task_api import TaskApi
from tasknest.api.webhook_api import WebhookApi
from tasknest.attachments.manager import ContentAttachmentManager, EditSession
from tasknest.attachments.store import AttachmentStore
from tasknest.auth.kv_storage import JsonFileStorage, MemoryStorage
from tasknest.auth.liveness import LivenessConfig, LivenessController
from tasknest.auth.session import AuthSession
from tasknest.client import Client
from tasknest.export import export_task_pdf
from tasknest.models.session import Session
from tasknest.models.task import ContentKind, ContentRecord, TaskDocument
from tasknest.storage.s3_client import S3Client
from tasknest.utils.settings import Settings, get_settings


class TaskNest:
    """
    Wires the backend client, auth session, attachment workflow and liveness loop
    for one signed-in client session.

    Collaborators are built here and handed down; nothing is module-global.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        s3_client: S3Client | None = None,
        liveness_config: LivenessConfig | None = None
    ) -> None:
        self.settings = settings or get_settings()
        self._init_logger()
        self._client = Client(self.settings)

        # Backend APIs
        self.auth_api = AuthApi(self._client)
        self.task_api = TaskApi(self._client)
        self.webhook_api = WebhookApi(self._client)

        # Local credential storage tiers
        self.durable_storage = JsonFileStorage(self.settings.state_file)
        self.session_storage = MemoryStorage()

        self.auth = AuthSession(self.auth_api, self._client, self.durable_storage)
        self.liveness = LivenessController(
            self.auth,
            self.durable_storage,
            self.session_storage,
            config=liveness_config or LivenessConfig.from_settings(self.settings),
            on_forced_sign_out=self._on_forced_sign_out
        )

        self._s3_client = s3_client
        self._attachments: ContentAttachmentManager | None = None

    async def __aenter__(self) -> "TaskNest":
        self.auth.restore()
        self.liveness.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Stop the liveness loop and close the HTTP client. Uploads in flight finish on their own."""
        await self.liveness.stop()
        await self._client.close()

    @property
    def attachments(self) -> ContentAttachmentManager:
        """
        Attachment workflow, created on first use.

        :raises ConfigurationError: If S3 credentials are not configured
        """
        if self._attachments is None:
            s3_client = self._s3_client or S3Client.from_settings(self.settings)
            store = AttachmentStore(s3_client, max_upload_mb=self.settings.max_upload_mb)
            self._attachments = ContentAttachmentManager(store, self.task_api, self.auth)
        return self._attachments

    async def sign_in(self, email: str | None = None, password: str | None = None) -> Session:
        """
        Sign in with email and password.

        :param email: Account email, defaults to TASKNEST_EMAIL env var
        :param password: Account password, defaults to TASKNEST_PASSWORD env var
        :raises ValueError: If email or password is not provided and not set in environment
        """
        email = email or os.getenv('TASKNEST_EMAIL')
        password = password or os.getenv('TASKNEST_PASSWORD')

        if not email or not password:
            raise ValueError(
                "Email and password are required. Provide them as arguments or "
                "set TASKNEST_EMAIL and TASKNEST_PASSWORD environment variables."
            )

        session = await self.auth.sign_in(email, password)
        self.liveness.reset_failures()
        return session

    async def sign_out(self) -> None:
        await self.auth.sign_out()

    async def edit(self, kind: ContentKind, record_id: str) -> EditSession:
        """Load a task or subtask and start editing its content."""
        session = await self.attachments.open_by_id(kind, record_id)
        session.begin_edit()
        return session

    async def send_to_tracker(self, record: ContentRecord) -> dict:
        """Push a task or subtask to the configured external tracker."""
        return await self.webhook_api.send_task(record.name, record.text)

    def export_pdf(self, task: TaskDocument, directory: str) -> str:
        return export_task_pdf(task, directory)

    def _on_forced_sign_out(self) -> None:
        logger.warning("Your session expired. Please sign in again.")

    def _init_logger(self) -> None:
        """Configure logging based on the TASKNEST_DEBUG setting.

        Debug mode logs everything from DEBUG up with source locations;
        otherwise only WARNING and above are shown.
        """
        logger.remove()
        level = "DEBUG" if self.settings.debug else "WARNING"
        log_format = (
            "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
            "<level>{message}</level>"
        ) if self.settings.debug else "<level>{message}</level>"
        logger.add(sys.stderr, level=level, format=log_format)
