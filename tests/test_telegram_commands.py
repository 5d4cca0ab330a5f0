"""Tests for Telegram command definitions."""

from feedback_relay.telegram_commands import BotCommand, telegram_commands


def test_telegram_commands_include_start() -> None:
    commands = telegram_commands()

    assert {"command": "start", "description": "Write a new anonymous message"} in (
        commands
    )
    assert len(commands) == len(list(BotCommand))
