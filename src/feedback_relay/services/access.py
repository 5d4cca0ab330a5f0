"""Activation and trust checks for bot users."""

import hmac
import logging
from dataclasses import dataclass
from typing import Protocol

from feedback_relay.domain.sessions import UserKey

logger = logging.getLogger(__name__)


class TrustedUserRepository(Protocol):
    """Persistence interface for activated users."""

    def add(self, user_key: UserKey, ttl_seconds: int) -> None:
        """Mark a user as trusted for the given TTL."""

    def exists(self, user_key: UserKey) -> bool:
        """Return true when the user is trusted and not expired."""

    def delete_all(self) -> int:
        """Remove every trusted user and return how many were removed."""


@dataclass(frozen=True)
class ActivationResult:
    """Outcome of an activation attempt."""

    success: bool
    reason: str


@dataclass
class AccessService:
    """Application service for the one-time activation flow."""

    repository: TrustedUserRepository
    access_token: str
    ttl_seconds: int

    def activate(self, user_key: UserKey, token: str) -> ActivationResult:
        """Trust the user if the token matches the configured access token."""
        if not token or not hmac.compare_digest(
            token.encode(), self.access_token.encode()
        ):
            return ActivationResult(success=False, reason="invalid_token")
        try:
            self.repository.add(user_key, self.ttl_seconds)
        except Exception:
            logger.exception("Failed to store trusted user")
            return ActivationResult(success=False, reason="store_error")
        return ActivationResult(success=True, reason="activated")

    def is_trusted(self, user_key: UserKey) -> bool:
        """Return whether the user is trusted; store failures mean no."""
        try:
            return self.repository.exists(user_key)
        except Exception:
            logger.exception("Trust lookup failed")
            return False

    def revoke_all(self) -> int:
        """Revoke access for every activated user."""
        revoked = self.repository.delete_all()
        logger.info("Revoked access for %s users", revoked)
        return revoked
