"""Advisory countdown to a session's ordering deadline."""

import asyncio
import contextlib
import math
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

URGENT_WINDOW = timedelta(minutes=5)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TimeLeft:
    remaining: timedelta

    @property
    def expired(self) -> bool:
        return self.remaining <= timedelta(0)

    @property
    def minutes(self) -> int:
        return max(0, math.floor(self.remaining.total_seconds() / 60))

    @property
    def seconds(self) -> int:
        return max(0, math.floor(self.remaining.total_seconds()) % 60)

    @property
    def is_urgent(self) -> bool:
        """True during the last five minutes before the deadline."""
        return not self.expired and self.remaining <= URGENT_WINDOW

    def label(self) -> str:
        if self.expired:
            return "Deadline passed"
        return f"{self.minutes}:{self.seconds:02d} left"


def time_left(deadline: datetime, now: datetime) -> TimeLeft:
    return TimeLeft(remaining=deadline - now)


@dataclass
class DeadlineCountdown:
    """Ticks once per interval until the deadline, then reports expiry.

    The server remains the authority on the deadline; this only drives the
    display. ``stop`` cancels the ticking task so nothing outlives the view.
    """

    deadline: datetime
    on_tick: Callable[[TimeLeft], None]
    on_expired: Callable[[], None] | None = None
    interval_seconds: float = 1.0
    clock: Callable[[], datetime] = _utcnow
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    _task: asyncio.Task[None] | None = field(default=None, init=False, repr=False)

    def current(self) -> TimeLeft:
        return time_left(self.deadline, self.clock())

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())

    async def run(self) -> None:
        while True:
            left = self.current()
            self.on_tick(left)
            if left.expired:
                if self.on_expired is not None:
                    self.on_expired()
                return
            await self.sleep(self.interval_seconds)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
