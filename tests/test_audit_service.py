"""Tests for the test-mode audit log."""

from datetime import UTC, datetime

from feedback_relay.domain.sessions import (
    Category,
    MessageContent,
    Session,
    Step,
    Topic,
)
from feedback_relay.services.audit import AuditService
from tests.conftest import InMemoryAuditRepository, photo

STARTED_AT = datetime(2023, 12, 31, 23, 55, tzinfo=UTC)


def _session() -> Session:
    return (
        Session(created_at=STARTED_AT)
        .transition(Step.AWAITING_TOPIC, category=Category.GRATITUDE)
        .transition(Step.AWAITING_CONTENT, topic=Topic.COLLEAGUES)
        .with_content(MessageContent(text="thanks", attachments=(photo("p1"),)))
    )


def test_record_delivery_uses_timestamp_key() -> None:
    repository = InMemoryAuditRepository()
    service = AuditService(
        repository,
        ttl_seconds=60,
        now=lambda: datetime(2024, 1, 1, tzinfo=UTC),
    )

    log_key = service.record_delivery(_session(), admin_chat_id=-1)

    assert log_key == "test_log:1704067200000"
    record = repository.records[log_key]
    assert record["category"] == "gratitude"
    assert record["topic"] == "colleagues"
    assert record["message_text"] == "thanks"
    assert record["attachments"] == [{"kind": "photo", "handle": "p1"}]
    assert "correlator" in record
    assert record["session_started_at"] == "2023-12-31T23:55:00+00:00"


def test_record_delivery_failure_returns_none() -> None:
    service = AuditService(InMemoryAuditRepository(fail=True), ttl_seconds=60)

    assert service.record_delivery(_session(), admin_chat_id=-1) is None
