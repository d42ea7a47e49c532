"""Session store with per-session mutation locks."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Protocol, TypeVar

from group_order.domain.errors import Busy, NotFound, TransientIOError
from group_order.domain.sessions import Session
from group_order.services.locks import KeyedLocks, LockTimeout

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SessionRepository(Protocol):
    """Persistence interface for session aggregates."""

    def get_session(self, session_id: str) -> Session | None:
        """Return a session by id, if present."""

    def save_session(self, session: Session) -> None:
        """Insert or replace a session."""

    def list_active_sessions(self, limit: int) -> list[Session]:
        """Return the most recent active sessions."""

    def list_sessions_for_user(self, user_id: str, limit: int) -> list[Session]:
        """Return recent sessions the user hosted or ordered in."""


@dataclass
class SessionStore:
    """Keyed session storage that serializes writes per session id.

    Repository calls are blocking, so they run in a worker thread and never
    stall the event loop. Reads go straight to the repository. Writes run
    through ``with_lock``, which holds one lock per session id, so writers to
    different sessions never wait on each other.
    """

    repository: SessionRepository
    lock_timeout_seconds: float = 5.0
    _locks: KeyedLocks = field(default_factory=KeyedLocks, repr=False)

    async def get(self, session_id: str) -> Session:
        """Return a session or raise ``NotFound``."""
        try:
            session = await asyncio.to_thread(
                self.repository.get_session, session_id
            )
        except Exception as exc:
            logger.exception(
                "Failed to load session", extra={"session_id": session_id}
            )
            raise TransientIOError("Failed to load session") from exc
        if session is None:
            raise NotFound(f"Session {session_id} not found")
        return session

    async def put(self, session: Session) -> None:
        """Persist a session, wrapping storage failures."""
        try:
            await asyncio.to_thread(self.repository.save_session, session)
        except Exception as exc:
            logger.exception(
                "Failed to save session", extra={"session_id": session.id}
            )
            raise TransientIOError("Failed to save session") from exc

    async def with_lock(
        self, session_id: str, fn: Callable[[Session], Awaitable[T]]
    ) -> T:
        """Run ``fn`` on the current session while holding its lock."""
        try:
            async with self._locks.hold(
                session_id, timeout=self.lock_timeout_seconds
            ):
                return await fn(await self.get(session_id))
        except LockTimeout as exc:
            logger.warning(
                "Timed out waiting for session lock", extra={"session_id": session_id}
            )
            raise Busy(f"Session {session_id} is busy, try again") from exc

    async def list_active(self, limit: int) -> list[Session]:
        try:
            return await asyncio.to_thread(self.repository.list_active_sessions, limit)
        except Exception as exc:
            logger.exception("Failed to list active sessions")
            raise TransientIOError("Failed to list sessions") from exc

    async def list_for_user(self, user_id: str, limit: int) -> list[Session]:
        try:
            return await asyncio.to_thread(
                self.repository.list_sessions_for_user, user_id, limit
            )
        except Exception as exc:
            logger.exception("Failed to list sessions", extra={"user_id": user_id})
            raise TransientIOError("Failed to list sessions") from exc
