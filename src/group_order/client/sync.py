"""Keeps a local copy of one session in sync with the server."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from group_order.client.api import SessionApi
from group_order.client.feed import FeedConnection, FeedDisconnected, SessionFeed
from group_order.client.retry import RetryConfig, calculate_delay_with_jitter
from group_order.domain.errors import GroupOrderError

logger = logging.getLogger(__name__)

CLOSED_NOTICE = "This session was closed by the host."

SnapshotListener = Callable[[dict[str, object]], None]


@dataclass
class SessionSyncClient:
    """Mirror a session from the realtime feed with reconnect and refetch.

    Each connection first subscribes to the feed and then fetches a fresh
    baseline over HTTP, so events committed while disconnected are never
    missed. Snapshots are replaced wholesale, never merged.
    """

    session_id: str
    api: SessionApi
    feed: SessionFeed
    retry: RetryConfig = field(default_factory=RetryConfig)
    ping_interval_seconds: float = 30.0
    on_update: SnapshotListener | None = None
    on_closed: SnapshotListener | None = None
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    snapshot: dict[str, object] | None = field(default=None, init=False)
    read_only: bool = field(default=False, init=False)
    closed_notice: str | None = field(default=None, init=False)
    _stopping: bool = field(default=False, init=False, repr=False)

    async def run(self) -> None:
        """Follow the session until it closes or ``stop`` is called.

        Terminal errors such as ``NotFound`` and ``Unauthorized`` propagate.
        After ``max_attempts`` consecutive failures ``FeedDisconnected`` is raised.
        """
        failures = 0
        while not self._stopping and not self.read_only:
            try:
                connection = await self.feed.connect(self.session_id)
            except FeedDisconnected:
                failures = await self._back_off(failures)
                continue
            try:
                await self.refresh()
                failures = 0
                await self._consume(connection)
            except FeedDisconnected:
                logger.info(
                    "Session feed dropped", extra={"session_id": self.session_id}
                )
                failures = await self._back_off(failures)
            except GroupOrderError as exc:
                if not exc.retryable:
                    raise
                failures = await self._back_off(failures)
            finally:
                await connection.close()

    async def refresh(self) -> dict[str, object]:
        """Fetch the current session and replace the local snapshot."""
        snapshot = await self.api.get_session(self.session_id)
        self._replace(snapshot)
        return snapshot

    def apply(self, event: dict[str, object]) -> None:
        """Apply one feed event to the local state."""
        event_type = event.get("type")
        data = event.get("data")
        if event_type == "updated" and isinstance(data, dict):
            self._replace(data)
        elif event_type == "closed":
            self._mark_closed()
        elif event_type == "error":
            logger.warning(
                "Feed reported an error",
                extra={"session_id": self.session_id, "error": data},
            )

    def stop(self) -> None:
        self._stopping = True

    async def _consume(self, connection: FeedConnection) -> None:
        while not self._stopping and not self.read_only:
            try:
                event = await asyncio.wait_for(
                    connection.receive(), timeout=self.ping_interval_seconds
                )
            except TimeoutError:
                await connection.send({"type": "ping"})
                continue
            self.apply(event)

    async def _back_off(self, failures: int) -> int:
        failures += 1
        if failures >= self.retry.max_attempts:
            logger.error(
                "Giving up on session feed",
                extra={"session_id": self.session_id, "attempts": failures},
            )
            raise FeedDisconnected(f"Gave up after {failures} attempts")
        await self.sleep(calculate_delay_with_jitter(failures - 1, self.retry))
        return failures

    def _replace(self, snapshot: dict[str, object]) -> None:
        self.snapshot = snapshot
        if self.on_update is not None:
            self.on_update(snapshot)
        if snapshot.get("status") == "closed":
            self._mark_closed()

    def _mark_closed(self) -> None:
        if self.read_only:
            return
        self.read_only = True
        self.closed_notice = CLOSED_NOTICE
        logger.info("Session closed", extra={"session_id": self.session_id})
        if self.on_closed is not None:
            self.on_closed(self.snapshot or {"id": self.session_id})
