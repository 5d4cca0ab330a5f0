"""Supabase-backed trusted user repository."""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from supabase import Client

from feedback_relay.domain.sessions import UserKey
from feedback_relay.services.access import TrustedUserRepository


@dataclass
class SupabaseTrustedUserRepository(TrustedUserRepository):
    """Supabase implementation for activated users."""

    client: Client
    table: str = "trusted_users"

    def add(self, user_key: UserKey, ttl_seconds: int) -> None:
        """Upsert the trusted user row with a fresh expiry."""
        now = datetime.now(tz=UTC)
        self.client.table(self.table).upsert(
            {
                "user_key": user_key,
                "activated_at": now.isoformat(),
                "expires_at": (now + timedelta(seconds=ttl_seconds)).isoformat(),
            },
            on_conflict="user_key",
        ).execute()

    def exists(self, user_key: UserKey) -> bool:
        """Return true when a live row exists for the user."""
        response = (
            self.client.table(self.table)
            .select("user_key")
            .eq("user_key", user_key)
            .gt("expires_at", datetime.now(tz=UTC).isoformat())
            .limit(1)
            .execute()
        )
        return bool(response.data)

    def delete_all(self) -> int:
        """Delete every trusted user row."""
        response = (
            self.client.table(self.table).delete().neq("user_key", "").execute()
        )
        return len(response.data or [])
