"""Parsing of inline keyboard callback data into typed actions."""

from dataclasses import dataclass
from enum import StrEnum

from feedback_relay.domain.sessions import Category, Topic


class ConfirmAction(StrEnum):
    """Actions offered on the confirmation and moderation prompts."""

    SEND = "send"
    CANCEL = "cancel"
    REWRITE = "rewrite"


@dataclass(frozen=True)
class CategoryChosen:
    """User picked a category."""

    category: Category


@dataclass(frozen=True)
class TopicChosen:
    """User picked a topic."""

    topic: Topic


@dataclass(frozen=True)
class ConfirmChosen:
    """User pressed a confirmation button."""

    action: ConfirmAction


Action = CategoryChosen | TopicChosen | ConfirmChosen

_PREFIXES: dict[str, type[StrEnum]] = {
    "category": Category,
    "topic": Topic,
    "confirm": ConfirmAction,
}


def parse_action(data: str | None) -> Action | None:
    """Parse callback data in the format <prefix>:<value>."""
    if not data or ":" not in data:
        return None
    prefix, raw_value = data.split(":", maxsplit=1)
    enum_type = _PREFIXES.get(prefix)
    if enum_type is None:
        return None
    try:
        value = enum_type(raw_value)
    except ValueError:
        return None
    if isinstance(value, Category):
        return CategoryChosen(value)
    if isinstance(value, Topic):
        return TopicChosen(value)
    return ConfirmChosen(ConfirmAction(value))


def category_data(category: Category) -> str:
    """Build callback data for a category button."""
    return f"category:{category}"


def topic_data(topic: Topic) -> str:
    """Build callback data for a topic button."""
    return f"topic:{topic}"


def confirm_data(action: ConfirmAction) -> str:
    """Build callback data for a confirmation button."""
    return f"confirm:{action}"
