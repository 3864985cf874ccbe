from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from tasknest.api.auth_api import AuthApi
from tasknest.auth.kv_storage import KeyValueStorage
from tasknest.client import Client
from tasknest.exceptions import TaskNestError
from tasknest.models.session import Session, User

AUTH_TOKEN_KEY = 'tasknest.auth.token'


class AuthSession:
    """
    Holds the signed-in session for this process.

    The session lives in memory and is mirrored into durable storage so a
    restart can pick it up again. The HTTP client's bearer header always
    follows the held session.
    """

    def __init__(self, auth_api: AuthApi, client: Client, storage: KeyValueStorage) -> None:
        self._auth_api = auth_api
        self._client = client
        self._storage = storage
        self._session: Session | None = None

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def access_token(self) -> str | None:
        return self._session.access_token if self._session else None

    @property
    def current_user_id(self) -> str | None:
        return self._session.user.id if self._session else None

    @property
    def has_credential(self) -> bool:
        return self._session is not None

    def restore(self) -> bool:
        """
        Load a previously mirrored session from storage.

        Unreadable entries are left for the liveness cleanup pass to purge.

        :return: True if a session was restored
        """
        raw = self._storage.get(AUTH_TOKEN_KEY)
        if not raw:
            return False
        try:
            session = Session.model_validate_json(raw)
        except PydanticValidationError as e:
            logger.warning(f"Ignoring unreadable stored session: {e.error_count()} error(s)")
            return False
        self._hold(session)
        logger.debug(f"Restored session for user {session.user.id}")
        return True

    async def sign_in(self, email: str, password: str) -> Session:
        session = await self._auth_api.sign_in(email, password)
        self._hold(session)
        self._storage.set(AUTH_TOKEN_KEY, session.model_dump_json())
        logger.info(f"Signed in as {session.user.email or session.user.id}")
        return session

    async def get_current_user(self) -> User | None:
        """Ask the auth provider who the held credential belongs to. None if nothing is held."""
        token = self.access_token
        if not token:
            return None
        return await self._auth_api.get_user(token)

    async def sign_out(self) -> None:
        """
        Drop the held session locally, then revoke it with the provider.

        Local state is cleared first; a failed revoke is logged and otherwise ignored
        since the credential is already gone from this client.
        """
        token = self.access_token
        self._session = None
        self._client.set_access_token(None)
        self._storage.remove(AUTH_TOKEN_KEY)
        if not token:
            return
        try:
            await self._auth_api.sign_out(token)
        except TaskNestError as e:
            logger.warning(f"Provider sign-out failed: {e}")
        logger.info("Signed out")

    def _hold(self, session: Session) -> None:
        self._session = session
        self._client.set_access_token(session.access_token)
