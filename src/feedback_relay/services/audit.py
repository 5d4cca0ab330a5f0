"""Test-mode audit log of delivered messages."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol
from uuid import uuid4

from feedback_relay.domain.sessions import Session

logger = logging.getLogger(__name__)


class AuditRepository(Protocol):
    """Persistence interface for audit records."""

    def create_record(
        self, log_key: str, payload: dict[str, object], ttl_seconds: int
    ) -> None:
        """Store an audit record that expires after the TTL."""


@dataclass
class AuditService:
    """Service for recording delivered messages while in test mode."""

    repository: AuditRepository
    ttl_seconds: int
    now: Callable[[], datetime] = field(default=lambda: datetime.now(tz=UTC))

    def record_delivery(self, session: Session, admin_chat_id: int) -> str | None:
        """Persist a redacted copy of the delivered session.

        Returns the log key, or None when the write failed. Failures are
        logged and never affect the delivery that already happened.
        """
        timestamp = self.now()
        log_key = f"test_log:{int(timestamp.timestamp() * 1000)}"
        payload: dict[str, object] = {
            "correlator": str(uuid4()),
            "timestamp": timestamp.isoformat(),
            "session_started_at": session.created_at.isoformat(),
            "category": session.category,
            "topic": session.topic,
            "message_text": session.content.text,
            "attachments": [
                attachment.model_dump(mode="json")
                for attachment in session.content.attachments
            ],
            "moderation_label": session.moderation_label,
            "admin_chat_id": admin_chat_id,
        }
        try:
            self.repository.create_record(log_key, payload, self.ttl_seconds)
        except Exception:
            logger.exception("Failed to write audit record", extra={"log_key": log_key})
            return None
        logger.info("Delivery logged", extra={"log_key": log_key})
        return log_key
