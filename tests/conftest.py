"""Shared pytest fixtures for the chatnotify tests.

Provides an in-memory transport and pre-wired pipeline objects so tests stay
deterministic and never touch the network.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Set

import pytest

from chatnotify.config import NotifyConfig
from chatnotify.delivery import DeliveryClient
from chatnotify.destinations import Destination, DestinationRegistry
from chatnotify.dispatcher import NotificationDispatcher
from chatnotify.formatting import MessageFormatter
from chatnotify.rate_limit import FixedWindowRateLimiter
from chatnotify.transport import TransportError


class FakeTransport:
    """Records every call; chat ids in ``failing`` raise ``TransportError``."""

    def __init__(self, failing: Optional[Set[str]] = None) -> None:
        self.calls: List[Dict[str, Any]] = []
        self.failing = set(failing or ())

    def _record(self, op: str, chat_id: str, payload: Any, **kwargs: Any) -> None:
        self.calls.append({"op": op, "chat_id": chat_id, "payload": payload, **kwargs})
        if chat_id in self.failing:
            raise TransportError(f"chat {chat_id} rejected", status_code=400)

    def send_message(self, chat_id, text, **kwargs):
        self._record("text", chat_id, text, **kwargs)

    def send_photo(self, chat_id, path, **kwargs):
        self._record("photo", chat_id, path, **kwargs)

    def send_document(self, chat_id, path, **kwargs):
        self._record("document", chat_id, path, **kwargs)

    @property
    def texts(self) -> List[str]:
        return [c["payload"] for c in self.calls if c["op"] == "text"]


class ManualClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def notify_config(tmp_path: Path) -> NotifyConfig:
    """Config fixture pointing local logs to a temporary directory."""
    return NotifyConfig(
        bot_token="test-token",
        log_directory=tmp_path,
        log_level="INFO",
    )


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def registry() -> DestinationRegistry:
    return DestinationRegistry(
        [
            Destination("100", thread_id=7, name="main"),
            Destination("200", name="report"),
            Destination("300", thread_id=3, name="error"),
        ]
    )


@pytest.fixture
def make_dispatcher(registry, fake_transport, clock):
    """Factory building a dispatcher around the fake transport."""

    def _make(
        *,
        capacity: int = 100,
        window_seconds: float = 60.0,
        registry_override: Optional[DestinationRegistry] = None,
        transport: Optional[FakeTransport] = None,
        formatter: Optional[MessageFormatter] = None,
    ) -> NotificationDispatcher:
        return NotificationDispatcher(
            registry_override if registry_override is not None else registry,
            DeliveryClient(transport or fake_transport),
            formatter or MessageFormatter(),
            FixedWindowRateLimiter(capacity, window_seconds, clock=clock),
        )

    return _make
