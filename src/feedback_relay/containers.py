"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import create_client

from feedback_relay.adapters.openai_moderation_client import OpenAIModerationClient
from feedback_relay.adapters.supabase_audit_repository import SupabaseAuditRepository
from feedback_relay.adapters.supabase_session_store import SupabaseSessionStore
from feedback_relay.adapters.supabase_trusted_user_repository import (
    SupabaseTrustedUserRepository,
)
from feedback_relay.adapters.telegram_client import (
    HttpxTelegramClient,
    TelegramClient,
)
from feedback_relay.config import Settings
from feedback_relay.services.access import AccessService
from feedback_relay.services.anchors import AnchorRenderer
from feedback_relay.services.audit import AuditService
from feedback_relay.services.coalescer import MediaCoalescer
from feedback_relay.services.conversation import ConversationService
from feedback_relay.services.delivery import DeliveryService
from feedback_relay.services.moderation import ModerationService
from feedback_relay.services.session_store import SessionStore


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    telegram_client: TelegramClient
    session_store: SessionStore
    access_service: AccessService
    moderation_service: ModerationService
    delivery_service: DeliveryService
    conversation_service: ConversationService
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    session_store = SupabaseSessionStore(supabase_client)
    access_service = AccessService(
        repository=SupabaseTrustedUserRepository(supabase_client),
        access_token=resolved_settings.access_token,
        ttl_seconds=resolved_settings.trusted_user_ttl_seconds,
    )
    telegram_client = HttpxTelegramClient.create(
        resolved_settings.telegram_bot_token,
        max_attempts=resolved_settings.telegram_max_attempts,
        backoff_base_seconds=resolved_settings.telegram_backoff_base_seconds,
        max_rate_limit_waits=resolved_settings.telegram_max_rate_limit_waits,
        request_timeout_seconds=resolved_settings.telegram_request_timeout_seconds,
    )
    moderation_client = (
        OpenAIModerationClient.create(resolved_settings.openai_api_key)
        if resolved_settings.openai_api_key
        else None
    )
    moderation_service = ModerationService(
        client=moderation_client,
        model=resolved_settings.moderation_model,
        timeout_seconds=resolved_settings.moderation_timeout_seconds,
        enabled=resolved_settings.moderation_active,
    )
    audit_service = (
        AuditService(
            SupabaseAuditRepository(supabase_client),
            ttl_seconds=resolved_settings.audit_ttl_seconds,
        )
        if resolved_settings.test_mode
        else None
    )
    renderer = AnchorRenderer(telegram_client)
    delivery_service = DeliveryService(
        telegram_client=telegram_client,
        store=session_store,
        renderer=renderer,
        admin_chat_id=resolved_settings.resolve_admin_chat_id(),
        session_ttl_seconds=resolved_settings.session_ttl_seconds,
        audit_service=audit_service,
    )
    conversation_service = ConversationService(
        store=session_store,
        access_service=access_service,
        moderation_service=moderation_service,
        coalescer=MediaCoalescer(
            store=session_store,
            ttl_seconds=resolved_settings.session_ttl_seconds,
            quiet_window_seconds=resolved_settings.media_group_quiet_seconds,
        ),
        delivery_service=delivery_service,
        telegram_client=telegram_client,
        renderer=renderer,
        session_ttl_seconds=resolved_settings.session_ttl_seconds,
        open_burst_policy=resolved_settings.open_burst_policy,
    )

    async def close_resources() -> None:
        await telegram_client.close()
        if moderation_client is not None:
            await moderation_client.close()

    return AppContainer(
        settings=resolved_settings,
        telegram_client=telegram_client,
        session_store=session_store,
        access_service=access_service,
        moderation_service=moderation_service,
        delivery_service=delivery_service,
        conversation_service=conversation_service,
        close_resources=close_resources,
    )
