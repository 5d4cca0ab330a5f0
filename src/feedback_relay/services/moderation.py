"""Content moderation check for outgoing feedback."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

from feedback_relay.domain.sessions import ModerationLabel

logger = logging.getLogger(__name__)


class ModerationClient(Protocol):
    """Interface for a moderation scorer."""

    async def is_flagged(self, *, model: str, text: str) -> bool:
        """Return true when the scorer flags the text."""


@dataclass
class ModerationService:
    """Labels message text; degrades to no label whenever it can't decide."""

    client: ModerationClient | None
    model: str
    timeout_seconds: float = 5.0
    enabled: bool = True

    @property
    def active(self) -> bool:
        return self.enabled and self.client is not None

    async def classify(self, text: str | None) -> ModerationLabel | None:
        """Return a moderation label for the text, or None if unchecked."""
        if not self.active or self.client is None:
            return None
        if not text or not text.strip():
            return None
        try:
            flagged = await asyncio.wait_for(
                self.client.is_flagged(model=self.model, text=text),
                timeout=self.timeout_seconds,
            )
        except TimeoutError:
            logger.warning(
                "Moderation timed out; continuing without a label",
                extra={"timeout_seconds": self.timeout_seconds},
            )
            return None
        except Exception:
            logger.exception("Moderation failed; continuing without a label")
            return None
        return ModerationLabel.FLAGGED if flagged else ModerationLabel.CLEAR
