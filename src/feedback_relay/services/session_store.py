"""Session store contract and an in-memory implementation."""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Protocol

from feedback_relay.domain.sessions import Session, UserKey


class SessionStoreError(RuntimeError):
    """Raised when a session write or delete could not be completed."""


class SessionStore(Protocol):
    """Ephemeral key/value storage for sessions, one entry per user."""

    def get(self, user_key: UserKey) -> Session | None:
        """Return the session, or None if absent, expired or unreadable."""

    def put(self, user_key: UserKey, session: Session, ttl_seconds: int) -> None:
        """Store the session and restart its TTL. Raises SessionStoreError."""

    def delete(self, user_key: UserKey) -> None:
        """Remove the session if present. Raises SessionStoreError."""


@dataclass
class _StoreEntry:
    session: Session
    expires_at: datetime


class InMemorySessionStore(SessionStore):
    """Process-local session store with per-entry expiry."""

    def __init__(self, now: Callable[[], datetime] | None = None) -> None:
        self._entries: dict[UserKey, _StoreEntry] = {}
        self._now = now or (lambda: datetime.now(tz=UTC))

    def get(self, user_key: UserKey) -> Session | None:
        """Return a session if it hasn't expired."""
        entry = self._entries.get(user_key)
        if entry is None:
            return None
        if self._now() >= entry.expires_at:
            self._entries.pop(user_key, None)
            return None
        return entry.session

    def put(self, user_key: UserKey, session: Session, ttl_seconds: int) -> None:
        """Store a session with a TTL."""
        expires_at = self._now() + timedelta(seconds=ttl_seconds)
        self._entries[user_key] = _StoreEntry(session=session, expires_at=expires_at)

    def delete(self, user_key: UserKey) -> None:
        """Drop a session."""
        self._entries.pop(user_key, None)
