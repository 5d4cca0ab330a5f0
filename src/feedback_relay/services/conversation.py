"""Conversation state machine for the anonymous feedback flow.

category -> topic -> content -> (moderation review) -> confirmation -> delivery

The session's ``step`` is the only source of truth: an event is interpreted
against the step it finds and anything that does not fit is answered with
guidance, never with a transition.
"""

import logging
from dataclasses import dataclass, field
from typing import Literal

from feedback_relay.adapters.telegram_client import TelegramApiError, TelegramClient
from feedback_relay.domain.actions import (
    Action,
    CategoryChosen,
    ConfirmAction,
    ConfirmChosen,
    TopicChosen,
    parse_action,
)
from feedback_relay.domain.events import ActionEvent, CommandEvent, ContentEvent
from feedback_relay.domain.sessions import (
    MessageContent,
    MessageRef,
    ModerationLabel,
    Session,
    Step,
    UserKey,
)
from feedback_relay.services.access import AccessService
from feedback_relay.services.anchors import AnchorRenderer
from feedback_relay.services.coalescer import MediaCoalescer
from feedback_relay.services.delivery import DeliveryService
from feedback_relay.services.locks import UserLocks
from feedback_relay.services.moderation import ModerationService
from feedback_relay.services.session_store import SessionStore, SessionStoreError
from feedback_relay.templates import (
    ACCESS_DENIED,
    ACTIVATED,
    BURST_FINALIZED,
    BURST_IN_PROGRESS,
    CALLBACK_ERROR,
    CONTENT_PROMPT,
    EMPTY_CONTENT,
    FOLLOW_PROMPTS,
    GENERIC_ERROR,
    HELP_TEXT,
    MODERATION_WARNING,
    NOT_ACTIVE,
    RESTART,
    REWRITE_PROMPT,
    SENDING,
    SESSION_EXPIRED,
    TOPIC_PROMPT,
    UNKNOWN_ACTION,
    UNKNOWN_COMMAND,
    WELCOME,
    category_keyboard,
    confirmation_keyboard,
    confirmation_text,
    moderation_keyboard,
    topic_keyboard,
)

logger = logging.getLogger(__name__)

OpenBurstPolicy = Literal["finalize", "reject"]


@dataclass
class _CallbackReply:
    """Answers a callback query at most once."""

    telegram_client: TelegramClient
    callback_query_id: str
    answered: bool = False

    async def answer(self, text: str | None = None) -> None:
        if self.answered:
            return
        self.answered = True
        try:
            await self.telegram_client.answer_callback_query(
                self.callback_query_id, text=text
            )
        except TelegramApiError as exc:
            logger.warning(
                "Failed to answer callback query",
                extra={"description": exc.description},
            )


@dataclass
class ConversationService:
    """State machine driving one user's session per inbound event."""

    store: SessionStore
    access_service: AccessService
    moderation_service: ModerationService
    coalescer: MediaCoalescer
    delivery_service: DeliveryService
    telegram_client: TelegramClient
    renderer: AnchorRenderer
    session_ttl_seconds: int = 3600
    open_burst_policy: OpenBurstPolicy = "finalize"
    locks: UserLocks = field(default_factory=UserLocks)

    async def handle_command(self, event: CommandEvent) -> None:
        """Handle /start [token], /help and unknown commands."""
        try:
            await self._handle_command(event)
        except SessionStoreError:
            logger.exception("Session write failed; command aborted")
            await self._send(event.chat_id, GENERIC_ERROR)

    async def handle_action(self, event: ActionEvent) -> None:
        """Handle an inline keyboard press."""
        reply = _CallbackReply(self.telegram_client, event.callback_query_id)
        try:
            await self._handle_action(event, reply)
        except SessionStoreError:
            logger.exception("Session write failed; step aborted")
            if reply.answered:
                await self._send(event.chat_id, GENERIC_ERROR)
            else:
                await reply.answer(CALLBACK_ERROR)
        finally:
            await reply.answer()

    async def handle_content(self, event: ContentEvent) -> None:
        """Handle a text or attachment message."""
        try:
            if event.media_group_id and event.attachments:
                await self._collect_burst(event)
            else:
                await self._handle_content(event)
        except SessionStoreError:
            logger.exception("Session write failed; step aborted")
            await self._send(event.chat_id, GENERIC_ERROR)

    async def _handle_command(self, event: CommandEvent) -> None:
        if event.command == "start":
            token = event.args[0] if event.args else None
            if token:
                result = self.access_service.activate(event.user_key, token)
                if not result.success:
                    await self._send(
                        event.chat_id,
                        GENERIC_ERROR if result.reason == "store_error" else NOT_ACTIVE,
                    )
                    return
                await self._send(event.chat_id, ACTIVATED)
            elif not self.access_service.is_trusted(event.user_key):
                await self._send(event.chat_id, NOT_ACTIVE)
                return
            await self._start_flow(event.user_key, event.chat_id)
            return

        if not self.access_service.is_trusted(event.user_key):
            await self._send(event.chat_id, NOT_ACTIVE)
        elif event.command == "help":
            await self._send(event.chat_id, HELP_TEXT)
        else:
            await self._send(event.chat_id, UNKNOWN_COMMAND)

    async def _start_flow(self, user_key: UserKey, chat_id: int) -> None:
        async with self.locks.hold(user_key):
            session = Session.start()
            self._save(user_key, session)
            anchor = await self.telegram_client.send_message(
                chat_id=chat_id, text=WELCOME, reply_markup=category_keyboard()
            )
            self._save_anchor(user_key, session, anchor)

    async def _handle_action(self, event: ActionEvent, reply: _CallbackReply) -> None:
        if not self.access_service.is_trusted(event.user_key):
            await reply.answer(ACCESS_DENIED)
            return
        action = parse_action(event.data)
        async with self.locks.hold(event.user_key):
            session = self.store.get(event.user_key)
            if session is None:
                await reply.answer(SESSION_EXPIRED)
                return
            if action is None:
                await reply.answer(UNKNOWN_ACTION)
                return
            await self._apply_action(event, session, action, reply)

    async def _apply_action(  # noqa: PLR0911
        self,
        event: ActionEvent,
        session: Session,
        action: Action,
        reply: _CallbackReply,
    ) -> None:
        step = session.step
        if isinstance(action, CategoryChosen) and step is Step.AWAITING_CATEGORY:
            updated = session.transition(Step.AWAITING_TOPIC, category=action.category)
            await self._advance(event, updated, TOPIC_PROMPT, topic_keyboard(), reply)
            return
        if isinstance(action, TopicChosen) and step is Step.AWAITING_TOPIC:
            updated = session.transition(Step.AWAITING_CONTENT, topic=action.topic)
            await self._advance(event, updated, CONTENT_PROMPT, None, reply)
            return
        if not isinstance(action, ConfirmChosen):
            await reply.answer(UNKNOWN_ACTION)
            return

        if action.action is ConfirmAction.SEND and step in {
            Step.PENDING_MODERATION_REVIEW,
            Step.AWAITING_CONFIRMATION,
        }:
            if step is Step.PENDING_MODERATION_REVIEW:
                session = session.transition(Step.AWAITING_CONFIRMATION)
                self._save(event.user_key, session)
            await reply.answer(SENDING)
            await self.delivery_service.deliver(
                event.user_key,
                event.chat_id,
                session.with_anchor(event.message_id or session.anchor_message_id),
            )
            return
        if (
            action.action is ConfirmAction.REWRITE
            and step is Step.PENDING_MODERATION_REVIEW
        ):
            await self._advance(event, session.rewritten(), REWRITE_PROMPT, None, reply)
            return
        if action.action is ConfirmAction.CANCEL and step is Step.AWAITING_CONFIRMATION:
            await self._advance(
                event, session.cancelled(), RESTART, category_keyboard(), reply
            )
            return
        await reply.answer(UNKNOWN_ACTION)

    async def _advance(  # noqa: PLR0913
        self,
        event: ActionEvent,
        updated: Session,
        text: str,
        reply_markup: dict | None,
        reply: _CallbackReply,
    ) -> None:
        """Persist the new step, then render its prompt into the anchor."""
        self._save(event.user_key, updated)
        await reply.answer()
        anchor = await self.renderer.render(
            event.chat_id,
            event.message_id or updated.anchor_message_id,
            text,
            reply_markup,
        )
        self._save_anchor(event.user_key, updated, anchor)

    async def _handle_content(self, event: ContentEvent) -> None:
        if not self.access_service.is_trusted(event.user_key):
            await self._send(event.chat_id, NOT_ACTIVE)
            return
        async with self.locks.hold(event.user_key):
            session = await self._load_for_content(event)
            if session is None:
                return
            content = MessageContent(text=event.text, attachments=event.attachments)
            if content.is_empty:
                await self._send(event.chat_id, EMPTY_CONTENT)
                return
            await self._submit(event.user_key, event.chat_id, session.with_content(content))

    async def _collect_burst(self, event: ContentEvent) -> None:
        """Add one media group item and close the burst once it goes quiet."""
        if not self.access_service.is_trusted(event.user_key):
            await self._send(event.chat_id, NOT_ACTIVE)
            return
        group_id = event.media_group_id
        if group_id is None:
            return
        async with self.locks.hold(event.user_key):
            session = await self._load_for_content(event, group_id)
            if session is None:
                return
            stamped = self.coalescer.append(
                event.user_key, session, event.attachments, event.text, group_id
            )

        if await self.coalescer.debounce_by_stamp(event.user_key, stamped) is None:
            return
        async with self.locks.hold(event.user_key):
            closed = self.coalescer.current_burst(event.user_key, stamped)
            if closed is None:
                return
            await self._submit(event.user_key, event.chat_id, closed)

    async def _load_for_content(
        self, event: ContentEvent, group_id: str | None = None
    ) -> Session | None:
        """Return the session if it accepts content now; reply otherwise.

        A burst that is still open when a different message arrives is either
        finalised first or the new message is turned away, by policy.
        """
        session = self.store.get(event.user_key)
        if session is None:
            await self._send(event.chat_id, SESSION_EXPIRED)
            return None
        if self.coalescer.is_open(session, group_id):
            if self.open_burst_policy == "reject":
                await self._send(event.chat_id, BURST_IN_PROGRESS)
                return None
            await self._submit(event.user_key, event.chat_id, session)
            await self._send(event.chat_id, BURST_FINALIZED)
            return None
        if session.step is not Step.AWAITING_CONTENT:
            await self._send(event.chat_id, FOLLOW_PROMPTS)
            return None
        return session

    async def _submit(self, user_key: UserKey, chat_id: int, session: Session) -> None:
        """Run moderation on recorded content and show the next prompt."""
        label = await self.moderation_service.classify(session.content.text)
        if label is ModerationLabel.FLAGGED:
            target = Step.PENDING_MODERATION_REVIEW
            text, reply_markup = MODERATION_WARNING, moderation_keyboard()
        else:
            target = Step.AWAITING_CONFIRMATION
            text = confirmation_text(len(session.content.attachments))
            reply_markup = confirmation_keyboard()
        updated = session.transition(
            target, moderation_label=label, pending_group_id=None
        )
        anchor = await self.telegram_client.send_message(
            chat_id=chat_id, text=text, reply_markup=reply_markup
        )
        self._save(user_key, updated.with_anchor(anchor))

    def _save(self, user_key: UserKey, session: Session) -> None:
        self.store.put(user_key, session, self.session_ttl_seconds)

    def _save_anchor(
        self, user_key: UserKey, session: Session, anchor: MessageRef
    ) -> Session:
        """Remember the anchor; losing it only costs an in-place edit later."""
        if session.anchor_message_id == anchor:
            return session
        updated = session.with_anchor(anchor)
        try:
            self._save(user_key, updated)
        except SessionStoreError:
            logger.warning("Failed to store anchor message id")
        return updated

    async def _send(self, chat_id: int, text: str) -> None:
        await self.telegram_client.send_message(chat_id=chat_id, text=text)
