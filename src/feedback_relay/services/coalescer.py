"""Coalescing of Telegram media groups into one logical message.

Telegram delivers every item of a media group as its own update. Each update
appends its attachment to the session and stamps it, then waits out a quiet
window. Whichever update still sees its own stamp afterwards closes the burst;
the others step aside, so a burst is closed at most once.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from feedback_relay.domain.sessions import Attachment, Session, Step, UserKey
from feedback_relay.services.session_store import SessionStore

logger = logging.getLogger(__name__)


@dataclass
class MediaCoalescer:
    """Groups near-simultaneous attachment uploads sharing a media group id."""

    store: SessionStore
    ttl_seconds: int
    quiet_window_seconds: float = 1.0
    # Stamps outlive the process that wrote them and are only compared for
    # equality, so wall-clock time is enough and may step backwards.
    clock: Callable[[], float] = field(default=time.time)
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep)

    def append(  # noqa: PLR0913
        self,
        user_key: UserKey,
        session: Session,
        attachments: tuple[Attachment, ...],
        caption: str | None,
        group_id: str,
    ) -> Session:
        """Add attachments to the pending burst, stamp it and persist it.

        Raises SessionStoreError when the write fails.
        """
        stamped = session.with_attachments(
            attachments, caption=caption, group_id=group_id, stamp=self.clock()
        )
        self.store.put(user_key, stamped, self.ttl_seconds)
        return stamped

    async def debounce_by_stamp(
        self, user_key: UserKey, session: Session, window: float | None = None
    ) -> Session | None:
        """Wait out the quiet window and report whether this burst is closed.

        Returns the fresh session when nothing newer arrived for the same
        burst during the wait, otherwise None.
        """
        await self.sleep(self.quiet_window_seconds if window is None else window)
        return self.current_burst(user_key, session)

    def current_burst(self, user_key: UserKey, session: Session) -> Session | None:
        """Return the stored session if it still carries this burst's stamp."""
        current = self.store.get(user_key)
        if current is None:
            return None
        if (
            current.pending_group_id is None
            or current.pending_group_id != session.pending_group_id
            or current.last_attachment_at != session.last_attachment_at
        ):
            logger.debug("Burst superseded", extra={"group_id": session.pending_group_id})
            return None
        return current

    @staticmethod
    def is_open(session: Session, group_id: str | None = None) -> bool:
        """Return true when a different burst is still collecting attachments."""
        if session.step is not Step.AWAITING_CONTENT or session.pending_group_id is None:
            return False
        return group_id is None or session.pending_group_id != group_id
