"""User-facing texts, keyboards and the admin message format."""

import random

from feedback_relay.domain.actions import (
    ConfirmAction,
    category_data,
    confirm_data,
    topic_data,
)
from feedback_relay.domain.sessions import Category, ModerationLabel, Session, Topic

CAPTION_LIMIT = 1024
MESSAGE_LIMIT = 4096

NOT_ACTIVE = "Hi! This bot is not active yet."
ACTIVATED = "Activation successful! You can now send anonymous messages."
ACCESS_DENIED = "Access denied"
SESSION_EXPIRED = "Session expired. Start again with /start"
UNKNOWN_ACTION = "Unknown action"
UNKNOWN_COMMAND = "Unknown command. Send /start to write a new message."
GENERIC_ERROR = "Something went wrong. Please try again later."
CALLBACK_ERROR = "Something went wrong"
SENDING = "Sending your message..."

WELCOME = (
    "Welcome! 👋\n\n"
    "This bot lets you send anonymous messages to the management team.\n\n"
    "Choose a category for your message:"
)
RESTART = "Let's start over. Choose a category for your message:"
TOPIC_PROMPT = "Choose a topic for your message:"
CONTENT_PROMPT = (
    "Great! Now write your message.\n\n"
    "You can send text, a photo, a video or a document, or several of them "
    "together, but as a single message."
)
REWRITE_PROMPT = (
    "Okay, write a new message.\n\n"
    "You can send text, a photo, a video or a document."
)
EMPTY_CONTENT = "Please send a text message or a media file."
FOLLOW_PROMPTS = "Please follow the instructions above. Use /start to begin."
BURST_IN_PROGRESS = "Still receiving your files. Please wait a moment."
BURST_FINALIZED = (
    "Your previous message has been processed and is ready to send above. "
    "Confirm or cancel it, then send your new message again."
)
MODERATION_WARNING = (
    "⚠️ Please note: your message may come across as harsh or offensive.\n\n"
    "You can:\n"
    "• Send the message as is\n"
    "• Rephrase it"
)
DELIVERY_FAILED = (
    "Something went wrong while sending your message. "
    'Tap "Send" to try again or "Cancel" to start over.'
)
HELP_TEXT = (
    "Send /start and follow the buttons: pick a category, a topic, then write "
    "your message. Nothing about you is shared with the recipients."
)

THANK_YOU_PHRASES = (
    "Thank you! Your message has been delivered anonymously. 🙌",
    "Delivered! Every voice helps us get better. 💡",
    "Thanks for speaking up. Your message is on its way to the team. ✉️",
    "Done! We appreciate you taking the time to share this. 🌱",
    "Your message has been sent. Thank you for your honesty. 🤝",
)

CATEGORY_LABELS: dict[Category, str] = {
    Category.IDEA: "Idea / suggestion",
    Category.PROBLEM: "Problem / complaint",
    Category.GRATITUDE: "Gratitude / recognition",
}

CATEGORY_EMOJIS: dict[Category, str] = {
    Category.IDEA: "💬",
    Category.PROBLEM: "⚠️",
    Category.GRATITUDE: "❤️",
}

TOPIC_LABELS: dict[Topic, str] = {
    Topic.PROCESSES: "Processes",
    Topic.COLLEAGUES: "Colleagues",
    Topic.CONDITIONS: "Working conditions",
    Topic.SALARY: "Salary",
    Topic.MANAGEMENT: "Management",
    Topic.OTHER: "Other",
}

MODERATION_LABELS: dict[ModerationLabel | None, str] = {
    ModerationLabel.FLAGGED: "Flagged",
    ModerationLabel.CLEAR: "Clear",
    None: "Not checked",
}


def _inline_keyboard(buttons: list[tuple[str, str]]) -> dict:
    """Build a Telegram inline keyboard payload, one button per row."""
    return {
        "inline_keyboard": [
            [{"text": label, "callback_data": callback}] for label, callback in buttons
        ]
    }


def category_keyboard() -> dict:
    return _inline_keyboard(
        [
            (
                f"{CATEGORY_EMOJIS[category]} {CATEGORY_LABELS[category]}",
                category_data(category),
            )
            for category in Category
        ]
    )


def topic_keyboard() -> dict:
    return _inline_keyboard(
        [(TOPIC_LABELS[topic], topic_data(topic)) for topic in Topic]
    )


def confirmation_keyboard() -> dict:
    return _inline_keyboard(
        [
            ("Send", confirm_data(ConfirmAction.SEND)),
            ("Cancel", confirm_data(ConfirmAction.CANCEL)),
        ]
    )


def moderation_keyboard() -> dict:
    return _inline_keyboard(
        [
            ("Send", confirm_data(ConfirmAction.SEND)),
            ("Rephrase", confirm_data(ConfirmAction.REWRITE)),
        ]
    )


def confirmation_text(attachment_count: int) -> str:
    """Text of the prompt shown once the message is ready to send."""
    files = ""
    if attachment_count == 1:
        files = " (1 file)"
    elif attachment_count > 1:
        files = f" ({attachment_count} files)"
    return (
        f"✅ Your message is ready to send{files}.\n\n"
        'Tap "Send" to confirm or "Cancel" to start over.'
    )


def random_phrase(rng: random.Random | None = None) -> str:
    """Pick a thank-you phrase for a delivered message."""
    return (rng or random).choice(THANK_YOU_PHRASES)


def format_admin_message(session: Session) -> str:
    """Format a relayed message for the admin chat."""
    if session.category is not None:
        category = (
            f"{CATEGORY_EMOJIS[session.category]} {CATEGORY_LABELS[session.category]}"
        )
    else:
        category = "📩 Not specified"
    topic = TOPIC_LABELS[session.topic] if session.topic is not None else "Not specified"
    body = session.content.text or "(media file without text)"
    tags = " ".join(
        f"#{value}" for value in (session.category, session.topic) if value is not None
    )
    lines = [
        "📩 New anonymous message",
        "",
        f"Category: {category}",
        f"Topic: {topic}",
        f"Moderation: {MODERATION_LABELS[session.moderation_label]}",
        "",
        "Text:",
        body,
    ]
    if tags:
        lines.extend(["", tags])
    return "\n".join(lines)


def telegram_length(text: str) -> int:
    """Return the length Telegram enforces limits on, in UTF-16 code units."""
    return len(text.encode("utf-16-le")) // 2


def split_message(text: str, limit: int = MESSAGE_LIMIT) -> list[str]:
    """Split text into consecutive chunks of at most ``limit`` UTF-16 units."""
    chunks: list[str] = []
    current: list[str] = []
    size = 0
    for char in text:
        width = 2 if ord(char) > 0xFFFF else 1
        if size + width > limit:
            chunks.append("".join(current))
            current, size = [], 0
        current.append(char)
        size += width
    if current:
        chunks.append("".join(current))
    return chunks
