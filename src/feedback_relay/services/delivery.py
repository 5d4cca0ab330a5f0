"""Delivery of confirmed messages to the admin chat."""

import logging
import random
from dataclasses import dataclass, field

from feedback_relay.adapters.telegram_client import (
    TelegramApiError,
    TelegramClient,
    TelegramPartialBatchError,
)
from feedback_relay.domain.sessions import MessageRef, Session, UserKey
from feedback_relay.services.anchors import AnchorRenderer
from feedback_relay.services.audit import AuditService
from feedback_relay.services.session_store import SessionStore, SessionStoreError
from feedback_relay.templates import (
    CAPTION_LIMIT,
    DELIVERY_FAILED,
    confirmation_keyboard,
    format_admin_message,
    random_phrase,
    split_message,
    telegram_length,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeliveryOutcome:
    """Result of relaying one session to the admin chat."""

    delivered: bool
    references: tuple[MessageRef, ...] = ()
    error: str | None = None


@dataclass
class DeliveryService:
    """Formats a session, sends it to the admin chat and closes the flow."""

    telegram_client: TelegramClient
    store: SessionStore
    renderer: AnchorRenderer
    admin_chat_id: int
    session_ttl_seconds: int = 3600
    audit_service: AuditService | None = None
    rng: random.Random = field(default_factory=random.Random)

    async def dispatch(self, session: Session) -> DeliveryOutcome:
        """Send the formatted payload; 0, 1 or many attachments."""
        text = format_admin_message(session)
        attachments = session.content.attachments
        client = self.telegram_client
        refs: list[MessageRef] = []
        try:
            caption: str | None = text
            if not attachments or telegram_length(text) > CAPTION_LIMIT:
                for chunk in split_message(text):
                    refs.append(await client.send_message(self.admin_chat_id, chunk))
                caption = None
            if len(attachments) == 1:
                refs.append(
                    await client.send_attachment(
                        self.admin_chat_id, attachments[0], caption=caption
                    )
                )
            elif attachments:
                refs.extend(
                    await client.send_attachment_batch(
                        self.admin_chat_id, attachments, caption=caption
                    )
                )
        except TelegramApiError as exc:
            if isinstance(exc, TelegramPartialBatchError):
                refs.extend(exc.sent)
            logger.error(
                "Delivery to admin chat failed",
                extra={
                    "method": exc.method,
                    "attachments": len(attachments),
                    "partial": len(refs),
                },
            )
            return DeliveryOutcome(
                delivered=False, references=tuple(refs), error=exc.description
            )
        return DeliveryOutcome(delivered=True, references=tuple(refs))

    async def deliver(
        self, user_key: UserKey, chat_id: int, session: Session
    ) -> DeliveryOutcome:
        """Relay the session and acknowledge the user.

        On success the session is destroyed. On failure it is kept as is so
        the user can press "Send" again, and the error prompt becomes the new
        anchor.
        """
        outcome = await self.dispatch(session)
        if not outcome.delivered:
            await self._report_failure(user_key, chat_id, session)
            return outcome

        try:
            self.store.delete(user_key)
        except SessionStoreError:
            logger.exception("Failed to clear session after delivery")
        if self.audit_service is not None:
            self.audit_service.record_delivery(session, self.admin_chat_id)
        try:
            await self.renderer.render(
                chat_id, session.anchor_message_id, random_phrase(self.rng)
            )
        except TelegramApiError:
            logger.exception("Failed to acknowledge delivered message")
        return outcome

    async def _report_failure(
        self, user_key: UserKey, chat_id: int, session: Session
    ) -> None:
        try:
            anchor = await self.telegram_client.send_message(
                chat_id=chat_id,
                text=DELIVERY_FAILED,
                reply_markup=confirmation_keyboard(),
            )
        except TelegramApiError:
            logger.exception("Failed to report delivery failure to user")
            return
        try:
            self.store.put(
                user_key, session.with_anchor(anchor), self.session_ttl_seconds
            )
        except SessionStoreError:
            logger.warning("Failed to store new anchor after delivery failure")
