"""Per-user locks serialising session updates within one process."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from feedback_relay.domain.sessions import UserKey


class UserLocks:
    """Hands out one asyncio.Lock per user key."""

    def __init__(self) -> None:
        self._locks: dict[UserKey, asyncio.Lock] = {}
        self._waiters: dict[UserKey, int] = {}

    @asynccontextmanager
    async def hold(self, user_key: UserKey) -> AsyncIterator[None]:
        """Hold the lock for a user; idle locks are dropped on release."""
        lock = self._locks.setdefault(user_key, asyncio.Lock())
        self._waiters[user_key] = self._waiters.get(user_key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[user_key] -= 1
            if not self._waiters[user_key]:
                del self._waiters[user_key]
                self._locks.pop(user_key, None)

    def __len__(self) -> int:
        return len(self._locks)
