"""Domain models for feedback conversation sessions."""

from datetime import UTC, datetime
from enum import StrEnum
from typing import NewType

from pydantic import BaseModel, ConfigDict, Field

UserKey = NewType("UserKey", str)
FileHandle = NewType("FileHandle", str)
MessageRef = NewType("MessageRef", int)


class Step(StrEnum):
    """Conversation steps a session moves through."""

    AWAITING_CATEGORY = "awaiting_category"
    AWAITING_TOPIC = "awaiting_topic"
    AWAITING_CONTENT = "awaiting_content"
    PENDING_MODERATION_REVIEW = "pending_moderation_review"
    AWAITING_CONFIRMATION = "awaiting_confirmation"


class Category(StrEnum):
    """Message categories offered to the user."""

    IDEA = "idea"
    PROBLEM = "problem"
    GRATITUDE = "gratitude"


class Topic(StrEnum):
    """Message topics offered to the user."""

    PROCESSES = "processes"
    COLLEAGUES = "colleagues"
    CONDITIONS = "conditions"
    SALARY = "salary"
    MANAGEMENT = "management"
    OTHER = "other"


class ModerationLabel(StrEnum):
    """Outcome of the content moderation check."""

    FLAGGED = "flagged"
    CLEAR = "clear"


class AttachmentKind(StrEnum):
    """Attachment types relayed to the admin chat."""

    PHOTO = "photo"
    VIDEO = "video"
    DOCUMENT = "document"


_TRANSITIONS: frozenset[tuple[Step, Step]] = frozenset(
    {
        (Step.AWAITING_CATEGORY, Step.AWAITING_TOPIC),
        (Step.AWAITING_TOPIC, Step.AWAITING_CONTENT),
        (Step.AWAITING_CONTENT, Step.PENDING_MODERATION_REVIEW),
        (Step.AWAITING_CONTENT, Step.AWAITING_CONFIRMATION),
        (Step.PENDING_MODERATION_REVIEW, Step.AWAITING_CONFIRMATION),
        (Step.PENDING_MODERATION_REVIEW, Step.AWAITING_CONTENT),
        (Step.AWAITING_CONFIRMATION, Step.AWAITING_CATEGORY),
    }
)


class InvalidTransitionError(ValueError):
    """Raised when a session is moved along an edge that does not exist."""

    def __init__(self, current: Step, target: Step) -> None:
        super().__init__(f"Cannot move session from {current} to {target}")
        self.current = current
        self.target = target


class Attachment(BaseModel):
    """Single attachment reference; the handle is passed through untouched."""

    model_config = ConfigDict(frozen=True)

    kind: AttachmentKind
    handle: FileHandle


class MessageContent(BaseModel):
    """User-authored message body and attachments."""

    model_config = ConfigDict(frozen=True)

    text: str | None = None
    attachments: tuple[Attachment, ...] = ()

    @property
    def is_empty(self) -> bool:
        """Return true when there is neither text nor an attachment."""
        return not (self.text and self.text.strip()) and not self.attachments


class Session(BaseModel):
    """Per-user conversation state kept in the session store."""

    model_config = ConfigDict(frozen=True)

    step: Step = Step.AWAITING_CATEGORY
    category: Category | None = None
    topic: Topic | None = None
    content: MessageContent = Field(default_factory=MessageContent)
    pending_group_id: str | None = None
    last_attachment_at: float | None = None
    moderation_label: ModerationLabel | None = None
    anchor_message_id: MessageRef | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))

    @classmethod
    def start(cls) -> "Session":
        """Return a fresh session waiting for a category."""
        return cls()

    def transition(self, target: Step, **changes: object) -> "Session":
        """Move to the target step along an allowed edge, applying changes."""
        if (self.step, target) not in _TRANSITIONS:
            raise InvalidTransitionError(self.step, target)
        return self.model_copy(update={**changes, "step": target})

    def with_anchor(self, message_id: MessageRef | None) -> "Session":
        """Return a copy pointing at a new anchor message."""
        return self.model_copy(update={"anchor_message_id": message_id})

    def with_content(self, content: MessageContent) -> "Session":
        """Return a copy with new content; the moderation label is reset."""
        return self.model_copy(
            update={"content": content, "moderation_label": None}
        )

    def with_attachments(
        self,
        attachments: tuple[Attachment, ...],
        caption: str | None,
        group_id: str,
        stamp: float,
    ) -> "Session":
        """Return a copy with attachments appended to the pending burst."""
        text = self.content.text or caption or None
        content = MessageContent(
            text=text, attachments=self.content.attachments + attachments
        )
        return self.model_copy(
            update={
                "content": content,
                "pending_group_id": group_id,
                "last_attachment_at": stamp,
                "moderation_label": None,
            }
        )

    def rewritten(self) -> "Session":
        """Drop the content and go back to waiting for it."""
        return self.transition(
            Step.AWAITING_CONTENT,
            content=MessageContent(),
            pending_group_id=None,
            last_attachment_at=None,
            moderation_label=None,
        )

    def cancelled(self) -> "Session":
        """Reset category, topic and content and start over."""
        return self.transition(
            Step.AWAITING_CATEGORY,
            category=None,
            topic=None,
            content=MessageContent(),
            pending_group_id=None,
            last_attachment_at=None,
            moderation_label=None,
        )
