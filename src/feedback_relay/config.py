"""Application configuration."""

import os
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    telegram_bot_token: str
    admin_chat_id: int
    access_token: str
    supabase_url: str
    supabase_service_key: str
    admin_chat_id_test: int | None = None
    test_mode: bool = False
    revoke_all_access: bool = False
    openai_api_key: str | None = None
    moderation_enabled: bool = True
    moderation_model: str = "omni-moderation-latest"
    moderation_timeout_seconds: float = 5.0
    session_ttl_seconds: int = 3600
    trusted_user_ttl_seconds: int = 7_776_000
    audit_ttl_seconds: int = 2_592_000
    media_group_quiet_seconds: float = 1.0
    open_burst_policy: Literal["finalize", "reject"] = "finalize"
    telegram_max_attempts: int = 3
    telegram_backoff_base_seconds: float = 1.0
    telegram_max_rate_limit_waits: int = 5
    telegram_request_timeout_seconds: float = 10.0
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )

    @property
    def moderation_active(self) -> bool:
        """Return true when moderation is switched on and has credentials."""
        return self.moderation_enabled and bool(self.openai_api_key)

    def resolve_admin_chat_id(self) -> int:
        """Return the chat that receives relayed messages."""
        if self.test_mode and self.admin_chat_id_test is not None:
            return self.admin_chat_id_test
        return self.admin_chat_id
