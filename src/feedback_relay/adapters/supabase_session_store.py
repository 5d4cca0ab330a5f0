"""Supabase-backed session store."""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from pydantic import ValidationError
from supabase import Client

from feedback_relay.domain.sessions import Session, UserKey
from feedback_relay.services.session_store import SessionStore, SessionStoreError

logger = logging.getLogger(__name__)


@dataclass
class SupabaseSessionStore(SessionStore):
    """Supabase implementation for conversation sessions.

    Rows outlive their ``expires_at``; every read filters on it, so an expired
    row behaves exactly like a missing one.
    """

    client: Client
    table: str = "bot_sessions"

    def get(self, user_key: UserKey) -> Session | None:
        """Return the live session for a user, if present."""
        try:
            response = (
                self.client.table(self.table)
                .select("payload_json, expires_at")
                .eq("user_key", user_key)
                .gt("expires_at", datetime.now(tz=UTC).isoformat())
                .limit(1)
                .execute()
            )
        except Exception:
            logger.exception("Session read failed; treating as absent")
            return None
        if not response.data:
            return None
        try:
            return Session.model_validate(response.data[0]["payload_json"])
        except (KeyError, ValidationError):
            logger.warning("Discarding unreadable session row")
            return None

    def put(self, user_key: UserKey, session: Session, ttl_seconds: int) -> None:
        """Upsert the session and push its expiry forward."""
        now = datetime.now(tz=UTC)
        try:
            self.client.table(self.table).upsert(
                {
                    "user_key": user_key,
                    "payload_json": session.model_dump(mode="json"),
                    "expires_at": (now + timedelta(seconds=ttl_seconds)).isoformat(),
                    "updated_at": now.isoformat(),
                },
                on_conflict="user_key",
            ).execute()
        except Exception as exc:
            raise SessionStoreError("Failed to store session") from exc

    def delete(self, user_key: UserKey) -> None:
        """Delete the session row."""
        try:
            self.client.table(self.table).delete().eq("user_key", user_key).execute()
        except Exception as exc:
            raise SessionStoreError("Failed to delete session") from exc
