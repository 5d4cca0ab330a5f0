"""Tests for Telegram webhook handling."""

from fastapi.testclient import TestClient

from feedback_relay.api.app import create_app
from feedback_relay.containers import AppContainer
from feedback_relay.domain.sessions import AttachmentKind, Step
from feedback_relay.telegram_commands import CHAT_MENU_BUTTON, telegram_commands
from feedback_relay.templates import (
    ACTIVATED,
    GENERIC_ERROR,
    NOT_ACTIVE,
    TOPIC_PROMPT,
    WELCOME,
    confirmation_text,
)
from tests.conftest import (
    ACCESS_TOKEN,
    USER_CHAT_ID,
    USER_KEY,
    FakeTelegramClient,
    InMemoryTrustedUserRepository,
    RecordingSessionStore,
)


def _message(update_id: int, **fields: object) -> dict[str, object]:
    return {
        "update_id": update_id,
        "message": {
            "message_id": 10 + update_id,
            "date": 1700000000 + update_id,
            "chat": {"id": USER_CHAT_ID, "type": "private"},
            "from": {"id": int(USER_KEY), "is_bot": False, "first_name": "Test"},
            **fields,
        },
    }


def _callback(update_id: int, data: str, message_id: int = 100) -> dict[str, object]:
    return {
        "update_id": update_id,
        "callback_query": {
            "id": f"cbq-{update_id}",
            "from": {"id": int(USER_KEY), "is_bot": False, "first_name": "Test"},
            "message": {
                "message_id": message_id,
                "date": 1700000000,
                "chat": {"id": USER_CHAT_ID, "type": "private"},
                "text": WELCOME,
            },
            "data": data,
        },
    }


def test_health(container: AppContainer) -> None:
    client = TestClient(create_app(container))

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_webhook_start_with_token_activates_and_prompts(
    container: AppContainer,
    telegram_client: FakeTelegramClient,
    trusted_users: InMemoryTrustedUserRepository,
) -> None:
    client = TestClient(create_app(container))

    response = client.post(
        "/telegram/webhook", json=_message(1, text=f"/start {ACCESS_TOKEN}")
    )

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert USER_KEY in trusted_users.users
    assert telegram_client.texts_to(USER_CHAT_ID) == [ACTIVATED, WELCOME]


def test_webhook_start_with_bot_suffix_is_parsed(
    container: AppContainer, telegram_client: FakeTelegramClient
) -> None:
    client = TestClient(create_app(container))

    client.post("/telegram/webhook", json=_message(1, text="/start@relay_bot"))

    assert telegram_client.texts_to(USER_CHAT_ID) == [NOT_ACTIVE]


def test_webhook_callback_advances_session(
    container: AppContainer,
    telegram_client: FakeTelegramClient,
    session_store: RecordingSessionStore,
    trusted_users: InMemoryTrustedUserRepository,
) -> None:
    trusted_users.users[USER_KEY] = 1
    client = TestClient(create_app(container))
    client.post("/telegram/webhook", json=_message(1, text="/start"))

    response = client.post("/telegram/webhook", json=_callback(2, "category:idea"))

    assert response.status_code == 200
    session = session_store.get(USER_KEY)
    assert session is not None
    assert session.step is Step.AWAITING_TOPIC
    assert telegram_client.edits[-1] == (USER_CHAT_ID, 100, TOPIC_PROMPT)
    assert telegram_client.callbacks == [("cbq-2", None)]


def test_webhook_photo_uses_largest_size(
    container: AppContainer,
    telegram_client: FakeTelegramClient,
    session_store: RecordingSessionStore,
    trusted_users: InMemoryTrustedUserRepository,
) -> None:
    trusted_users.users[USER_KEY] = 1
    client = TestClient(create_app(container))
    client.post("/telegram/webhook", json=_message(1, text="/start"))
    client.post("/telegram/webhook", json=_callback(2, "category:problem"))
    client.post("/telegram/webhook", json=_callback(3, "topic:conditions"))

    response = client.post(
        "/telegram/webhook",
        json=_message(
            4,
            caption="broken chair",
            photo=[
                {
                    "file_id": "small",
                    "file_unique_id": "small-unique",
                    "width": 64,
                    "height": 64,
                },
                {
                    "file_id": "large",
                    "file_unique_id": "large-unique",
                    "width": 256,
                    "height": 256,
                },
            ],
        ),
    )

    assert response.status_code == 200
    session = session_store.get(USER_KEY)
    assert session is not None
    assert session.step is Step.AWAITING_CONFIRMATION
    (attachment,) = session.content.attachments
    assert attachment.kind is AttachmentKind.PHOTO
    assert attachment.handle == "large"
    assert session.content.text == "broken chair"
    assert telegram_client.texts_to(USER_CHAT_ID)[-1] == confirmation_text(1)


def test_webhook_ignores_malformed_payloads(
    container: AppContainer, telegram_client: FakeTelegramClient
) -> None:
    client = TestClient(create_app(container))

    not_json = client.post(
        "/telegram/webhook",
        content=b"{not json",
        headers={"content-type": "application/json"},
    )
    wrong_shape = client.post("/telegram/webhook", json={"message": "hello"})

    assert not_json.status_code == 200
    assert wrong_shape.status_code == 200
    assert not telegram_client.messages


def test_webhook_unexpected_error_still_returns_ok(
    container: AppContainer, telegram_client: FakeTelegramClient
) -> None:
    async def explode(_event: object) -> None:
        raise RuntimeError("boom")

    container.conversation_service.handle_content = explode  # type: ignore[method-assign]
    client = TestClient(create_app(container))

    response = client.post("/telegram/webhook", json=_message(1, text="hello"))

    assert response.status_code == 200
    assert telegram_client.texts_to(USER_CHAT_ID) == [GENERIC_ERROR]


def test_lifespan_syncs_commands_and_revokes_access(
    container: AppContainer,
    telegram_client: FakeTelegramClient,
    trusted_users: InMemoryTrustedUserRepository,
) -> None:
    trusted_users.users[USER_KEY] = 1
    container.settings.revoke_all_access = True

    with TestClient(create_app(container)):
        pass

    assert telegram_client.commands == telegram_commands()
    assert telegram_client.menu_button == CHAT_MENU_BUTTON
    assert not trusted_users.users
