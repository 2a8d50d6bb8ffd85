from __future__ import annotations

from dataclasses import replace

import pytest

from conclave_tick.config import Settings


BASE_SETTINGS = Settings(
    conclave_token="conclave-token",
    telegram_bot_token="bot-token",
    telegram_chat_id="4242",
)


@pytest.fixture
def make_settings():
    def factory(**overrides) -> Settings:
        return replace(BASE_SETTINGS, **overrides)

    return factory


@pytest.fixture
def required_env():
    return {
        "CONCLAVE_TOKEN": "conclave-token",
        "TELEGRAM_BOT_TOKEN": "bot-token",
        "TELEGRAM_CHAT_ID": "4242",
    }
