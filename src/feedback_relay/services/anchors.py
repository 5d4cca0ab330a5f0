"""Rendering flow prompts into a single anchor message."""

import logging
from dataclasses import dataclass

from feedback_relay.adapters.telegram_client import TelegramApiError, TelegramClient
from feedback_relay.domain.sessions import MessageRef

logger = logging.getLogger(__name__)


@dataclass
class AnchorRenderer:
    """Edits the anchor message in place, sending a fresh one when it can't."""

    telegram_client: TelegramClient

    async def render(
        self,
        chat_id: int,
        anchor: MessageRef | None,
        text: str,
        reply_markup: dict | None = None,
    ) -> MessageRef:
        """Show text (and keyboard) to the user and return the anchor to keep."""
        if anchor is not None:
            try:
                await self.telegram_client.edit_message_text(
                    chat_id=chat_id,
                    message_id=anchor,
                    text=text,
                    reply_markup=reply_markup,
                )
            except TelegramApiError as exc:
                logger.warning(
                    "Anchor edit failed; sending a new message",
                    extra={"description": exc.description},
                )
            else:
                return anchor
        return await self.telegram_client.send_message(
            chat_id=chat_id, text=text, reply_markup=reply_markup
        )
