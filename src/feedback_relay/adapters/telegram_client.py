"""Telegram API client adapter."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Protocol

import httpx

from feedback_relay.domain.sessions import Attachment, AttachmentKind, MessageRef

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"
MEDIA_GROUP_LIMIT = 10

_SEND_METHODS: dict[AttachmentKind, tuple[str, str]] = {
    AttachmentKind.PHOTO: ("sendPhoto", "photo"),
    AttachmentKind.VIDEO: ("sendVideo", "video"),
    AttachmentKind.DOCUMENT: ("sendDocument", "document"),
}


class TelegramApiError(RuntimeError):
    """Raised when a Bot API call fails for good."""

    def __init__(
        self,
        method: str,
        description: str,
        *,
        status_code: int | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(f"Telegram {method} failed: {description}")
        self.method = method
        self.description = description
        self.status_code = status_code
        self.retryable = retryable


class TelegramRateLimitedError(TelegramApiError):
    """HTTP 429 from the Bot API, optionally with a retry_after hint."""

    def __init__(self, method: str, retry_after: float | None) -> None:
        super().__init__(
            method, "rate limited", status_code=429, retryable=True
        )
        self.retry_after = retry_after


class TelegramPartialBatchError(TelegramApiError):
    """A later media group chunk failed after earlier chunks were delivered."""

    def __init__(self, cause: TelegramApiError, sent: Sequence[MessageRef]) -> None:
        super().__init__(
            cause.method,
            cause.description,
            status_code=cause.status_code,
            retryable=cause.retryable,
        )
        self.sent = tuple(sent)


class TelegramClient(Protocol):
    """Interface for Telegram API interactions."""

    async def send_message(
        self, chat_id: int, text: str, reply_markup: dict | None = None
    ) -> MessageRef:
        """Send a text message to a Telegram chat."""

    async def edit_message_text(
        self,
        chat_id: int,
        message_id: MessageRef,
        text: str,
        reply_markup: dict | None = None,
    ) -> None:
        """Replace the text and keyboard of an earlier bot message."""

    async def send_attachment(
        self, chat_id: int, attachment: Attachment, caption: str | None = None
    ) -> MessageRef:
        """Send a single photo, video or document."""

    async def send_attachment_batch(
        self,
        chat_id: int,
        attachments: Sequence[Attachment],
        caption: str | None = None,
    ) -> list[MessageRef]:
        """Send several attachments as media groups."""

    async def answer_callback_query(
        self, callback_query_id: str, text: str | None = None
    ) -> None:
        """Answer a Telegram callback query."""

    async def set_my_commands(self, commands: list[dict[str, str]]) -> None:
        """Set the bot command list."""

    async def set_chat_menu_button(
        self, menu_button: dict[str, object] | None = None
    ) -> None:
        """Set the chat menu button."""


@dataclass
class HttpxTelegramClient:
    """Telegram client implemented with httpx.

    Every call goes through ``_call``, which retries transient failures
    (transport errors, 5xx, 429) with exponential backoff. A 429 carrying
    ``retry_after`` waits for the hint instead and keeps the attempt.
    """

    bot_token: str
    http_client: httpx.AsyncClient
    max_attempts: int = 3
    backoff_base_seconds: float = 1.0
    max_rate_limit_waits: int = 5
    request_timeout_seconds: float = 10.0
    base_url: str = TELEGRAM_API_BASE
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep)

    @classmethod
    def create(  # noqa: PLR0913
        cls,
        bot_token: str,
        *,
        max_attempts: int = 3,
        backoff_base_seconds: float = 1.0,
        max_rate_limit_waits: int = 5,
        request_timeout_seconds: float = 10.0,
    ) -> "HttpxTelegramClient":
        """Create a Telegram client with a managed httpx session."""
        return cls(
            bot_token=bot_token,
            http_client=httpx.AsyncClient(),
            max_attempts=max_attempts,
            backoff_base_seconds=backoff_base_seconds,
            max_rate_limit_waits=max_rate_limit_waits,
            request_timeout_seconds=request_timeout_seconds,
        )

    async def send_message(
        self, chat_id: int, text: str, reply_markup: dict | None = None
    ) -> MessageRef:
        """Send a message using Telegram's sendMessage API."""
        payload: dict[str, object] = {"chat_id": chat_id, "text": text}
        if reply_markup is not None:
            payload["reply_markup"] = reply_markup
        result = await self._call("sendMessage", payload)
        return _message_ref("sendMessage", result)

    async def edit_message_text(
        self,
        chat_id: int,
        message_id: MessageRef,
        text: str,
        reply_markup: dict | None = None,
    ) -> None:
        """Edit a message using Telegram's editMessageText API."""
        payload: dict[str, object] = {
            "chat_id": chat_id,
            "message_id": message_id,
            "text": text,
        }
        if reply_markup is not None:
            payload["reply_markup"] = reply_markup
        await self._call("editMessageText", payload)

    async def send_attachment(
        self, chat_id: int, attachment: Attachment, caption: str | None = None
    ) -> MessageRef:
        """Send a photo, video or document by file id."""
        method, field_name = _SEND_METHODS[attachment.kind]
        payload: dict[str, object] = {
            "chat_id": chat_id,
            field_name: attachment.handle,
        }
        if caption:
            payload["caption"] = caption
        result = await self._call(method, payload)
        return _message_ref(method, result)

    async def send_attachment_batch(
        self,
        chat_id: int,
        attachments: Sequence[Attachment],
        caption: str | None = None,
    ) -> list[MessageRef]:
        """Send attachments via sendMediaGroup, chunked to the API limit.

        The caption goes on the first item of the first chunk. A failing
        chunk raises. When earlier chunks already went out, the error is a
        ``TelegramPartialBatchError`` carrying their references.
        """
        if not attachments:
            raise ValueError("send_attachment_batch needs at least one attachment")
        refs: list[MessageRef] = []
        for start in range(0, len(attachments), MEDIA_GROUP_LIMIT):
            chunk = attachments[start : start + MEDIA_GROUP_LIMIT]
            media: list[dict[str, object]] = []
            for index, attachment in enumerate(chunk):
                item: dict[str, object] = {
                    "type": attachment.kind.value,
                    "media": attachment.handle,
                }
                if caption and start == 0 and index == 0:
                    item["caption"] = caption
                media.append(item)
            try:
                result = await self._call(
                    "sendMediaGroup", {"chat_id": chat_id, "media": media}
                )
                if not isinstance(result, list):
                    raise TelegramApiError("sendMediaGroup", "unexpected result shape")
                chunk_refs = [_message_ref("sendMediaGroup", entry) for entry in result]
            except TelegramApiError as exc:
                if refs:
                    raise TelegramPartialBatchError(exc, refs) from exc
                raise
            refs.extend(chunk_refs)
        return refs

    async def answer_callback_query(
        self, callback_query_id: str, text: str | None = None
    ) -> None:
        """Answer a callback query using Telegram's API."""
        payload: dict[str, object] = {"callback_query_id": callback_query_id}
        if text is not None:
            payload["text"] = text
        await self._call("answerCallbackQuery", payload)

    async def close(self) -> None:
        """Close the underlying HTTP client session."""
        await self.http_client.aclose()

    async def set_my_commands(self, commands: list[dict[str, str]]) -> None:
        """Set the bot command list."""
        await self._call("setMyCommands", {"commands": commands})

    async def set_chat_menu_button(
        self, menu_button: dict[str, object] | None = None
    ) -> None:
        """Set the chat menu button."""
        await self._call(
            "setChatMenuButton", {"menu_button": menu_button or {"type": "commands"}}
        )

    async def _call(self, method: str, payload: dict[str, object]) -> object:
        """POST a Bot API method and return its ``result`` field."""
        url = f"{self.base_url}/bot{self.bot_token}/{method}"
        attempt = 1
        rate_limit_waits = 0
        while True:
            try:
                response = await self.http_client.post(
                    url, json=payload, timeout=self.request_timeout_seconds
                )
                return _parse_response(method, response)
            except TelegramRateLimitedError as exc:
                if (
                    exc.retry_after is not None
                    and rate_limit_waits < self.max_rate_limit_waits
                ):
                    rate_limit_waits += 1
                    logger.warning(
                        "Telegram rate limited; waiting for hint",
                        extra={"method": method, "retry_after": exc.retry_after},
                    )
                    await self.sleep(exc.retry_after)
                    continue
                error: TelegramApiError = exc
            except TelegramApiError as exc:
                error = exc
            except httpx.TransportError as exc:
                error = TelegramApiError(
                    method, f"{type(exc).__name__}: {exc}", retryable=True
                )

            if not error.retryable or attempt >= self.max_attempts:
                logger.error(
                    "Telegram request failed",
                    extra={
                        "method": method,
                        "attempt": attempt,
                        "status_code": error.status_code,
                    },
                )
                raise error
            delay = self.backoff_base_seconds * 2 ** (attempt - 1)
            logger.warning(
                "Telegram request failed; retrying",
                extra={"method": method, "attempt": attempt, "delay": delay},
            )
            await self.sleep(delay)
            attempt += 1


def _parse_response(method: str, response: httpx.Response) -> object:
    """Return the result of a Bot API response or raise TelegramApiError."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if response.status_code == 429:
        raise _rate_limited_error(method, body)
    if response.status_code >= 500:
        raise TelegramApiError(
            method,
            _description(body, response),
            status_code=response.status_code,
            retryable=True,
        )
    if not isinstance(body, dict):
        raise TelegramApiError(
            method, "malformed response body", status_code=response.status_code
        )
    if response.status_code >= 400 or not body.get("ok"):
        raise TelegramApiError(
            method, _description(body, response), status_code=response.status_code
        )
    return body.get("result")


def _rate_limited_error(method: str, body: object) -> TelegramRateLimitedError:
    retry_after: float | None = None
    if isinstance(body, dict):
        parameters = body.get("parameters")
        if isinstance(parameters, dict):
            value = parameters.get("retry_after")
            if isinstance(value, int | float) and value >= 0:
                retry_after = float(value)
    return TelegramRateLimitedError(method, retry_after)


def _description(body: object, response: httpx.Response) -> str:
    if isinstance(body, dict) and body.get("description"):
        return str(body["description"])
    return f"HTTP {response.status_code}"


def _message_ref(method: str, result: object) -> MessageRef:
    if isinstance(result, dict) and isinstance(result.get("message_id"), int):
        return MessageRef(result["message_id"])
    raise TelegramApiError(method, "response is missing message_id")
