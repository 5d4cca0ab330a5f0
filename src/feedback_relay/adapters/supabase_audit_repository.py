"""Supabase repository for test-mode audit records."""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from supabase import Client

from feedback_relay.services.audit import AuditRepository


@dataclass
class SupabaseAuditRepository(AuditRepository):
    """Supabase-backed audit repository."""

    client: Client
    table: str = "delivery_audit_log"

    def create_record(
        self, log_key: str, payload: dict[str, object], ttl_seconds: int
    ) -> None:
        """Insert an audit row with an expiry."""
        expires_at = datetime.now(tz=UTC) + timedelta(seconds=ttl_seconds)
        self.client.table(self.table).upsert(
            {
                "log_key": log_key,
                "payload_json": payload,
                "expires_at": expires_at.isoformat(),
            },
            on_conflict="log_key",
        ).execute()
