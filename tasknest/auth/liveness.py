"""
Session liveness control loop.

Keeps the client's belief about its credential aligned with the auth provider
and scrubs expired or corrupt credential material from local storage.

One worker task owns :class:`LivenessState` and drains an inbox of events.
Timers and the visibility hook only enqueue, so checks and cleanup passes never
overlap and counter updates need no locking.
"""
import asyncio
import json
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from loguru import logger
from pydantic import BaseModel, Field

from tasknest.auth.credential import is_token_expired
from tasknest.auth.kv_storage import KeyValueStorage
from tasknest.auth.session import AuthSession
from tasknest.exceptions import TaskNestError, ValidationDecodeError
from tasknest.utils.settings import Settings, get_settings

DURABLE_AUTH_KEY_PATTERNS = ('supabase', 'auth', 'session', 'token')
SESSION_AUTH_KEY_PATTERNS = ('supabase', 'auth', 'session')


class LivenessEvent(str, Enum):
    CHECK = 'check'
    CLEANUP = 'cleanup'
    RESET = 'reset'


class LivenessConfig(BaseModel):
    check_interval_ms: int = Field(default=60_000, gt=0)
    cleanup_interval_ms: int = Field(default=172_800_000, gt=0)
    max_retries: int = Field(default=3, ge=1)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "LivenessConfig":
        settings = settings or get_settings()
        return cls(
            check_interval_ms=settings.check_interval_ms,
            cleanup_interval_ms=settings.cleanup_interval_ms,
            max_retries=settings.max_retries,
        )


@dataclass
class LivenessState:
    consecutive_failures: int = 0
    last_checked_at: datetime | None = None


def _entry_expired(value: str | None, now: int) -> bool:
    """
    Whether a cached auth entry carries an ``expires_at``/``exp`` in the past.

    :raises ValidationDecodeError: If the value is not JSON or the expiry is not a number
    """
    if not value:
        return False
    try:
        parsed: Any = json.loads(value)
    except ValueError as e:
        raise ValidationDecodeError(f"Cached entry is not JSON: {e}") from e
    if not isinstance(parsed, dict):
        return False
    expiration = parsed.get('expires_at') or parsed.get('exp')
    if expiration is None:
        return False
    if isinstance(expiration, bool) or not isinstance(expiration, (int, float)):
        raise ValidationDecodeError(f"Cached entry has invalid expiry: {expiration!r}")
    return expiration < now


class LivenessController:
    """
    Periodically validates the held credential and purges stale cached credentials.

    Usage::

        async with LivenessController(auth, durable, ephemeral) as controller:
            ...
            controller.notify_visibility(True)
    """

    def __init__(
        self,
        auth: AuthSession,
        durable_storage: KeyValueStorage,
        session_storage: KeyValueStorage,
        config: LivenessConfig | None = None,
        clock: Callable[[], float] = time.time,
        on_forced_sign_out: Callable[[], None] | None = None
    ) -> None:
        """
        :param auth: Holder of the current session
        :param durable_storage: Persistent key-value tier to scrub
        :param session_storage: Process-lifetime key-value tier to scrub
        :param config: Intervals and retry threshold (defaults from settings)
        :param clock: Epoch-seconds clock used for expiry comparisons
        :param on_forced_sign_out: Called after the controller signs the user out
        """
        self._auth = auth
        self._durable = durable_storage
        self._ephemeral = session_storage
        self.config = config or LivenessConfig.from_settings()
        self._clock = clock
        self._on_forced_sign_out = on_forced_sign_out
        self.state = LivenessState()
        self._inbox: asyncio.Queue[LivenessEvent] | None = None
        self._tasks: list[asyncio.Task] = []
        self._visible = True

    @property
    def is_running(self) -> bool:
        return bool(self._tasks)

    async def __aenter__(self) -> "LivenessController":
        self.start()
        return self

    async def __aexit__(self, exc_type: type | None, exc_val: BaseException | None, exc_tb: Any) -> None:
        await self.stop()

    def start(self) -> None:
        """Start the worker and both timers. Must be called from a running event loop."""
        if self.is_running:
            return
        self._inbox = asyncio.Queue()
        self._tasks = [
            asyncio.create_task(self._worker(), name='liveness-worker'),
            asyncio.create_task(
                self._ticker(LivenessEvent.CHECK, self.config.check_interval_ms, immediate=False),
                name='liveness-check-timer'
            ),
            asyncio.create_task(
                self._ticker(LivenessEvent.CLEANUP, self.config.cleanup_interval_ms, immediate=True),
                name='liveness-cleanup-timer'
            ),
        ]
        logger.debug(
            f"Liveness controller started (check every {self.config.check_interval_ms}ms, "
            f"cleanup every {self.config.cleanup_interval_ms}ms)"
        )

    async def stop(self) -> None:
        """Cancel timers and worker. Safe to call when nothing is running."""
        tasks, self._tasks = self._tasks, []
        self._inbox = None
        if not tasks:
            return
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.debug("Liveness controller stopped")

    def notify_visibility(self, visible: bool) -> None:
        """
        Report the host surface's visibility.

        A hidden to visible transition with a credential held queues an immediate check.
        Debouncing is left to the host.
        """
        resumed = visible and not self._visible
        self._visible = visible
        if resumed and self._auth.has_credential and self._inbox is not None:
            logger.debug("Surface resumed, queueing session check")
            self._inbox.put_nowait(LivenessEvent.CHECK)

    def reset_failures(self) -> None:
        """Clear the failure counter, e.g. after a fresh sign-in. Queued behind pending checks while running."""
        if self._inbox is not None:
            self._inbox.put_nowait(LivenessEvent.RESET)
        else:
            self.state.consecutive_failures = 0

    async def validate(self) -> bool:
        """
        Whether the held credential is still good. Never raises.

        Fails closed without a credential, and answers False for an expired
        ``exp`` claim without calling the auth provider.
        """
        token = self._auth.access_token
        if not token:
            return False
        try:
            if is_token_expired(token, self._clock()):
                logger.warning("Session token expired")
                return False
            user = await self._auth.get_current_user()
        except ValidationDecodeError as e:
            logger.warning(f"Session token unreadable: {e}")
            return False
        except Exception as e:
            logger.warning(f"Session validation failed: {e}")
            return False
        return user is not None

    async def check(self) -> None:
        """
        Validate once and update the failure counter.

        Reaching ``max_retries`` consecutive failures purges cached credentials,
        signs out and resets the counter.
        """
        if not self._auth.has_credential:
            return

        valid = await self.validate()
        self.state.last_checked_at = datetime.now(timezone.utc)
        if valid:
            self.state.consecutive_failures = 0
            return

        self.state.consecutive_failures += 1
        logger.warning(
            f"Session validation failed ({self.state.consecutive_failures}/{self.config.max_retries})"
        )
        if self.state.consecutive_failures < self.config.max_retries:
            return

        logger.warning("Max session validation retries reached, signing out...")
        try:
            self.cleanup_expired_sessions()
            await self._auth.sign_out()
        finally:
            self.state.consecutive_failures = 0
        if self._on_forced_sign_out:
            self._on_forced_sign_out()

    def cleanup_expired_sessions(self) -> int:
        """
        Scrub auth-related entries from both storage tiers.

        Entries whose embedded expiry has passed are removed, and so are entries
        that cannot be parsed. One bad entry never stops the pass.

        :return: Number of entries removed
        """
        now = int(self._clock())
        removed = self._scrub(self._durable, DURABLE_AUTH_KEY_PATTERNS, now, 'storage')
        removed += self._scrub(self._ephemeral, SESSION_AUTH_KEY_PATTERNS, now, 'session storage')
        if removed:
            logger.info(f"Session cleanup removed {removed} cached entr{'y' if removed == 1 else 'ies'}")
        return removed

    def _scrub(self, storage: KeyValueStorage, patterns: tuple[str, ...], now: int, tier: str) -> int:
        removed = 0
        for key in storage.list_keys():
            if not any(pattern in key for pattern in patterns):
                continue
            try:
                try:
                    expired = _entry_expired(storage.get(key), now)
                except ValidationDecodeError as e:
                    storage.remove(key)
                    removed += 1
                    logger.debug(f"Cleaned corrupted {tier} data: {key} ({e})")
                    continue
                if expired:
                    storage.remove(key)
                    removed += 1
                    logger.debug(f"Cleaned expired {tier} data: {key}")
            except TaskNestError as e:
                logger.error(f"Could not clean {tier} entry {key}: {e}")
        return removed

    async def _ticker(self, event: LivenessEvent, interval_ms: int, immediate: bool) -> None:
        if immediate:
            self._enqueue(event)
        while True:
            await asyncio.sleep(interval_ms / 1000)
            if event is LivenessEvent.CHECK and not self._auth.has_credential:
                continue
            self._enqueue(event)

    def _enqueue(self, event: LivenessEvent) -> None:
        if self._inbox is not None:
            self._inbox.put_nowait(event)

    async def _worker(self) -> None:
        inbox = self._inbox
        while True:
            event = await inbox.get()
            try:
                if event is LivenessEvent.CHECK:
                    await self.check()
                elif event is LivenessEvent.RESET:
                    self.state.consecutive_failures = 0
                else:
                    self.cleanup_expired_sessions()
            except Exception:
                logger.exception(f"Liveness {event.value} failed")
            finally:
                inbox.task_done()
