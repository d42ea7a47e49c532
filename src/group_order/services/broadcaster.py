"""Fan-out of session events to subscribed channels."""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol

from group_order.domain.events import EventKind, SessionEvent
from group_order.services.locks import KeyedLocks

logger = logging.getLogger(__name__)

# Close code for evicted channels; clients reconnect and refetch on it.
CLOSE_EVICTED = 4408


class Channel(Protocol):
    """A push channel to one connected client."""

    async def send(self, message: dict[str, object]) -> None:
        """Deliver one message to the client."""

    async def close(self, code: int) -> None:
        """Close the underlying connection."""


@dataclass(frozen=True)
class DeliveryReport:
    """Outcome of one broadcast."""

    sent: int
    failed: int


@dataclass
class Broadcaster:
    """Registry of subscribers per session id.

    Each session's subscriber set has its own lock. ``_registry_lock`` only
    guards the channel -> sessions index, so a slow broadcast on one session
    never blocks joins on another. A channel dropped from the registry, by a
    failed delivery or by going stale, is also closed, so its client notices
    and resubscribes instead of silently missing events.
    """

    send_timeout_seconds: float = 2.0
    clock: Callable[[], float] = time.monotonic
    _subscribers: dict[str, set[Channel]] = field(default_factory=dict, repr=False)
    _channel_sessions: dict[Channel, set[str]] = field(
        default_factory=dict, repr=False
    )
    _last_seen: dict[Channel, float] = field(default_factory=dict, repr=False)
    _session_locks: KeyedLocks = field(default_factory=KeyedLocks, repr=False)
    _registry_lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    async def join(self, session_id: str, channel: Channel) -> None:
        """Subscribe a channel to a session; joining again refreshes liveness."""
        async with self._session_locks.hold(session_id):
            self._subscribers.setdefault(session_id, set()).add(channel)
        async with self._registry_lock:
            self._channel_sessions.setdefault(channel, set()).add(session_id)
            self._last_seen[channel] = self.clock()

    async def touch(self, channel: Channel) -> None:
        """Record activity on a channel."""
        async with self._registry_lock:
            if channel in self._channel_sessions:
                self._last_seen[channel] = self.clock()

    async def leave(self, session_id: str, channel: Channel) -> None:
        """Unsubscribe a channel from one session."""
        await self._remove(session_id, channel)
        async with self._registry_lock:
            sessions = self._channel_sessions.get(channel)
            if sessions is not None:
                sessions.discard(session_id)
                if not sessions:
                    self._channel_sessions.pop(channel, None)
                    self._last_seen.pop(channel, None)

    async def disconnect(self, channel: Channel) -> None:
        """Remove a channel from every session it joined."""
        async with self._registry_lock:
            sessions = self._channel_sessions.pop(channel, set())
            self._last_seen.pop(channel, None)
        for session_id in sessions:
            await self._remove(session_id, channel)

    async def publish(
        self, session_id: str, kind: EventKind, payload: dict[str, object]
    ) -> DeliveryReport:
        """Push an event to every channel currently subscribed to a session."""
        return await self.deliver(SessionEvent(session_id, kind, payload))

    async def deliver(self, event: SessionEvent) -> DeliveryReport:
        """Deliver an event; failing channels are evicted and closed, never raised."""
        async with self._session_locks.hold(event.session_id):
            channels = list(self._subscribers.get(event.session_id, ()))
            if not channels:
                return DeliveryReport(sent=0, failed=0)
            message = event.to_message()
            results = await asyncio.gather(
                *(self._send(channel, message) for channel in channels)
            )
            failed = [
                channel for channel, ok in zip(channels, results, strict=True) if not ok
            ]
            subscribers = self._subscribers.get(event.session_id)
            if subscribers is not None:
                subscribers.difference_update(failed)
                if not subscribers:
                    self._subscribers.pop(event.session_id, None)
        for channel in failed:
            logger.warning(
                "Dropping subscriber after failed delivery",
                extra={"session_id": event.session_id, "event": event.kind.value},
            )
            await self.evict(channel)
        return DeliveryReport(sent=len(channels) - len(failed), failed=len(failed))

    async def evict(self, channel: Channel) -> None:
        """Unsubscribe a channel everywhere and close it."""
        await self.disconnect(channel)
        try:
            await asyncio.wait_for(
                channel.close(CLOSE_EVICTED), timeout=self.send_timeout_seconds
            )
        except Exception:
            logger.exception("Failed to close evicted subscriber")

    def subscriber_count(self, session_id: str) -> int:
        return len(self._subscribers.get(session_id, ()))

    def stale_channels(self, max_idle_seconds: float) -> list[Channel]:
        """Return channels with no activity for longer than ``max_idle_seconds``."""
        cutoff = self.clock() - max_idle_seconds
        return [channel for channel, seen in self._last_seen.items() if seen < cutoff]

    async def prune_stale(self, max_idle_seconds: float) -> list[Channel]:
        """Evict stale channels and return them."""
        stale = self.stale_channels(max_idle_seconds)
        for channel in stale:
            await self.evict(channel)
        return stale

    async def _send(self, channel: Channel, message: dict[str, object]) -> bool:
        try:
            await asyncio.wait_for(
                channel.send(message), timeout=self.send_timeout_seconds
            )
        except Exception:
            logger.exception("Failed to deliver session event")
            return False
        return True

    async def _remove(self, session_id: str, channel: Channel) -> None:
        async with self._session_locks.hold(session_id):
            subscribers = self._subscribers.get(session_id)
            if subscribers is None:
                return
            subscribers.discard(channel)
            if not subscribers:
                self._subscribers.pop(session_id, None)
