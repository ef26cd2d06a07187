"""Fixtures for integration tests that hit the real Telegram Bot API."""

import os

import pytest

from chatnotify.config import NotifyConfig, load_config


@pytest.fixture(scope="session")
def live_config() -> NotifyConfig:
    config = load_config()
    if not config.is_bot_enabled() or config.main_group is None:
        if os.getenv("CI") or os.getenv("GITHUB_ACTIONS"):
            pytest.fail("Telegram credentials must be configured for CI runs.")
        pytest.skip("Telegram creds not configured; skipping integration test")
    return config
