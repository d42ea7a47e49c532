"""Per-key asyncio locks that are dropped once nobody holds or awaits them."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field


class LockTimeout(Exception):
    """A lock could not be acquired in time."""


@dataclass
class KeyedLocks:
    """One ``asyncio.Lock`` per key, reference counted.

    A key's lock lives only while some caller holds it or waits for it, so
    the map stays bounded by the number of keys in use. Lookup and insert
    happen without an await in between, so two callers never get two locks
    for the same key.
    """

    _locks: dict[str, asyncio.Lock] = field(default_factory=dict, repr=False)
    _users: dict[str, int] = field(default_factory=dict, repr=False)

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(
        self, key: str, timeout: float | None = None
    ) -> AsyncIterator[None]:
        """Hold the lock for ``key``; raises ``LockTimeout`` after ``timeout``."""
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._users[key] = self._users.get(key, 0) + 1
        try:
            if timeout is None:
                await lock.acquire()
            else:
                try:
                    await asyncio.wait_for(lock.acquire(), timeout=timeout)
                except TimeoutError as exc:
                    raise LockTimeout(key) from exc
            try:
                yield
            finally:
                lock.release()
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]
