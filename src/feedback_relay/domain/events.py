"""Inbound events produced from Telegram updates."""

from dataclasses import dataclass, field

from feedback_relay.domain.sessions import Attachment, MessageRef, UserKey


@dataclass(frozen=True)
class CommandEvent:
    """A slash command such as /start <token>."""

    user_key: UserKey
    chat_id: int
    command: str
    args: tuple[str, ...] = ()


@dataclass(frozen=True)
class ContentEvent:
    """A text and/or attachment message from the user."""

    user_key: UserKey
    chat_id: int
    text: str | None = None
    attachments: tuple[Attachment, ...] = field(default_factory=tuple)
    media_group_id: str | None = None


@dataclass(frozen=True)
class ActionEvent:
    """An inline keyboard button press."""

    user_key: UserKey
    chat_id: int
    callback_query_id: str
    data: str | None
    message_id: MessageRef | None = None
