"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from pydantic import ValidationError

from feedback_relay.api.telegram_models import (
    TelegramMessage,
    TelegramPhotoSize,
    TelegramUpdate,
)
from feedback_relay.app_logging import configure_logging
from feedback_relay.containers import AppContainer
from feedback_relay.domain.events import ActionEvent, CommandEvent, ContentEvent
from feedback_relay.domain.sessions import (
    Attachment,
    AttachmentKind,
    FileHandle,
    MessageRef,
    UserKey,
)
from feedback_relay.telegram_commands import CHAT_MENU_BUTTON, telegram_commands
from feedback_relay.templates import GENERIC_ERROR


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        state_container: AppContainer = app.state.container
        try:
            await state_container.telegram_client.set_my_commands(telegram_commands())
            await state_container.telegram_client.set_chat_menu_button(
                CHAT_MENU_BUTTON
            )
        except Exception:
            logger.exception("Failed to sync Telegram bot commands")
        if state_container.settings.revoke_all_access:
            try:
                state_container.access_service.revoke_all()
            except Exception:
                logger.exception("Failed to revoke access")
        yield
        await state_container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.post("/telegram/webhook")
    async def telegram_webhook(request: Request) -> dict[str, str]:
        """Handle Telegram webhook updates.

        Always answers 200 so Telegram does not redeliver the update.
        """
        state_container: AppContainer = request.app.state.container
        try:
            update = TelegramUpdate.model_validate(await request.json())
        except (ValueError, ValidationError):
            logger.warning("Ignoring malformed webhook payload")
            return {"status": "ok"}

        chat_id = _extract_chat_id(update)
        try:
            await _dispatch(state_container, update)
        except Exception:
            logger.exception(
                "Unhandled error processing update",
                extra={"update_id": update.update_id},
            )
            if chat_id is not None:
                try:
                    await state_container.telegram_client.send_message(
                        chat_id=chat_id, text=GENERIC_ERROR
                    )
                except Exception:
                    logger.exception("Failed to send error reply")
        return {"status": "ok"}

    return app


async def _dispatch(container: AppContainer, update: TelegramUpdate) -> None:
    """Turn an update into a domain event and hand it to the state machine."""
    conversation = container.conversation_service
    if update.callback_query:
        callback = update.callback_query
        message = callback.message
        chat_id = message.chat.id if message else callback.from_user.id
        await conversation.handle_action(
            ActionEvent(
                user_key=UserKey(str(callback.from_user.id)),
                chat_id=chat_id,
                callback_query_id=callback.id,
                data=callback.data,
                message_id=MessageRef(message.message_id) if message else None,
            )
        )
        return

    message = update.message
    if message is None or message.from_user is None:
        return
    user_key = UserKey(str(message.from_user.id))
    attachments = _extract_attachments(message)
    if message.text and message.text.startswith("/") and not attachments:
        command, args = _parse_command(message.text)
        await conversation.handle_command(
            CommandEvent(
                user_key=user_key,
                chat_id=message.chat.id,
                command=command,
                args=args,
            )
        )
        return
    await conversation.handle_content(
        ContentEvent(
            user_key=user_key,
            chat_id=message.chat.id,
            text=message.text if message.text is not None else message.caption,
            attachments=attachments,
            media_group_id=message.media_group_id,
        )
    )


def _select_largest_photo(photos: list[TelegramPhotoSize]) -> TelegramPhotoSize:
    """Select the largest photo size from the Telegram payload."""
    return max(photos, key=lambda photo: (photo.width * photo.height))


def _extract_attachments(message: TelegramMessage) -> tuple[Attachment, ...]:
    attachments: list[Attachment] = []
    if message.photo:
        photo = _select_largest_photo(message.photo)
        attachments.append(
            Attachment(kind=AttachmentKind.PHOTO, handle=FileHandle(photo.file_id))
        )
    if message.video:
        attachments.append(
            Attachment(
                kind=AttachmentKind.VIDEO, handle=FileHandle(message.video.file_id)
            )
        )
    if message.document:
        attachments.append(
            Attachment(
                kind=AttachmentKind.DOCUMENT,
                handle=FileHandle(message.document.file_id),
            )
        )
    return tuple(attachments)


def _parse_command(text: str) -> tuple[str, tuple[str, ...]]:
    """Split "/start@bot token" into ("start", ("token",))."""
    head, *args = text.split()
    command = head[1:].split("@", maxsplit=1)[0].lower()
    return command, tuple(args)


def _extract_chat_id(update: TelegramUpdate) -> int | None:
    """Extract the chat to reply to, if present."""
    if update.callback_query:
        callback = update.callback_query
        if callback.message:
            return callback.message.chat.id
        return callback.from_user.id
    if update.message:
        return update.message.chat.id
    return None
