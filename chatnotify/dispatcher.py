"""Notification dispatcher: resolve -> rate limit -> format -> deliver.

Every outbound path (single sends, group shortcuts, broadcasts and
fire-and-forget submissions) goes through the shared rate limiter. Failed
and rate-limited deliveries are logged on this module's logger, which the
chat log sink ignores.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Tuple, Union

from chatnotify.config import NotifyConfig
from chatnotify.delivery import DeliveryClient, DeliveryOutcome, PathLike
from chatnotify.destinations import Destination, DestinationRegistry
from chatnotify.formatting import LogEvent, MessageFormatter
from chatnotify.logging_utils import perf_span
from chatnotify.rate_limit import FixedWindowRateLimiter
from chatnotify.transport import TelegramBotTransport, Transport

LOGGER = logging.getLogger(__name__)

MAIN_GROUP = "main"
REPORT_GROUP = "report"
ERROR_GROUP = "error"


class MessageKind(str, Enum):
    TEXT = "text"
    PHOTO = "photo"
    DOCUMENT = "document"


@dataclass(frozen=True)
class NotificationRequest:
    """One dispatch call.

    Attributes:
        destination: A ``Destination``, or a logical name / chat id to resolve.
        kind: Text, photo or document; plain strings such as "photo" are accepted.
        body: Message text or ``LogEvent`` for text; file path for media.
        caption: Optional media caption.
        severity: Optional level tag rendered in front of text messages.
    """

    destination: Union[Destination, str, int]
    kind: MessageKind = MessageKind.TEXT
    body: Union[str, LogEvent, PathLike, None] = None
    caption: Optional[str] = None
    severity: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", MessageKind(self.kind))


class NotificationDispatcher:
    """Route notifications to registered chat destinations."""

    def __init__(
        self,
        registry: DestinationRegistry,
        client: DeliveryClient,
        formatter: MessageFormatter,
        rate_limiter: FixedWindowRateLimiter,
        *,
        max_workers: int = 2,
    ) -> None:
        self._registry = registry
        self._client = client
        self._formatter = formatter
        self._rate_limiter = rate_limiter
        self._max_workers = max(1, int(max_workers))
        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()

    @property
    def registry(self) -> DestinationRegistry:
        return self._registry

    def dispatch(self, request: NotificationRequest) -> DeliveryOutcome:
        """Deliver ``request`` synchronously.

        Raises:
            DestinationNotFound: if the request names an unknown destination.
        """
        destination = self._registry.resolve(request.destination)
        return self._deliver(destination, request)

    def dispatch_by_name(self, name: str, text: Any, *, severity: Optional[str] = None) -> DeliveryOutcome:
        destination = self._registry.resolve_by_name(name)
        return self._deliver(destination, NotificationRequest(destination, body=text, severity=severity))

    def dispatch_by_id(self, chat_id: Any, text: Any, *, severity: Optional[str] = None) -> DeliveryOutcome:
        destination = self._registry.resolve_by_id(chat_id)
        return self._deliver(destination, NotificationRequest(destination, body=text, severity=severity))

    def send_photo(self, target: Union[Destination, str, int], path: PathLike, caption: Optional[str] = None) -> DeliveryOutcome:
        return self.dispatch(NotificationRequest(target, MessageKind.PHOTO, body=path, caption=caption))

    def send_document(
        self, target: Union[Destination, str, int], path: PathLike, caption: Optional[str] = None
    ) -> DeliveryOutcome:
        return self.dispatch(NotificationRequest(target, MessageKind.DOCUMENT, body=path, caption=caption))

    def send_to_main_group(self, text: Any, *, severity: Optional[str] = None) -> DeliveryOutcome:
        return self.dispatch_by_name(MAIN_GROUP, text, severity=severity)

    def send_to_report_group(self, text: Any, *, severity: Optional[str] = None) -> DeliveryOutcome:
        return self.dispatch_by_name(REPORT_GROUP, text, severity=severity)

    def send_to_error_group(self, text: Any, *, severity: Optional[str] = None) -> DeliveryOutcome:
        return self.dispatch_by_name(ERROR_GROUP, text, severity=severity)

    def broadcast_to_all_groups(self, message: Any, *, severity: Optional[str] = None) -> List[Tuple[str, DeliveryOutcome]]:
        """Send ``message`` to every registered destination.

        Returns one ``(label, outcome)`` pair per destination, in registration
        order. A failure for one destination never stops the others.
        """
        results: List[Tuple[str, DeliveryOutcome]] = []
        destinations = self._registry.all()
        with perf_span("dispatch.broadcast", tags={"destinations": len(destinations)}, logger=LOGGER):
            for destination in destinations:
                request = NotificationRequest(destination, body=message, severity=severity)
                results.append((destination.label, self._deliver_safely(destination, request)))
        failed = sum(1 for _, outcome in results if not outcome.success)
        LOGGER.info("Broadcast summary: destinations=%s failed=%s", len(results), failed)
        return results

    def submit(self, request: NotificationRequest) -> "Future[DeliveryOutcome]":
        """Deliver ``request`` on a background worker.

        The destination is resolved before returning, so ``DestinationNotFound``
        is raised to the caller rather than hidden in the future.
        """
        destination = self._registry.resolve(request.destination)
        return self._get_executor().submit(self._deliver_safely, destination, request)

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self._max_workers,
                    thread_name_prefix="chatnotify-dispatch",
                )
            return self._executor

    def _deliver_safely(self, destination: Destination, request: NotificationRequest) -> DeliveryOutcome:
        try:
            return self._deliver(destination, request)
        except Exception as exc:  # noqa: BLE001 - isolate one destination from the rest
            outcome = DeliveryOutcome.failed(DeliveryOutcome.DISPATCH_ERROR, f"{type(exc).__name__}: {exc}")
            self._record(destination, outcome)
            return outcome

    def _deliver(self, destination: Destination, request: NotificationRequest) -> DeliveryOutcome:
        if not self._rate_limiter.try_acquire():
            outcome = DeliveryOutcome.failed(
                DeliveryOutcome.RATE_LIMITED,
                f"more than {self._rate_limiter.capacity} messages in {self._rate_limiter.window_seconds:g}s",
            )
        elif request.kind is MessageKind.PHOTO:
            caption = self._formatter.render_caption(request.caption)
            outcome = self._client.send_photo(destination, request.body, caption)
        elif request.kind is MessageKind.DOCUMENT:
            caption = self._formatter.render_caption(request.caption)
            outcome = self._client.send_document(destination, request.body, caption)
        else:
            payload = self._formatter.render(request.body, severity=request.severity)
            outcome = self._client.send_text(destination, payload)
        self._record(destination, outcome)
        return outcome

    @staticmethod
    def _record(destination: Destination, outcome: DeliveryOutcome) -> None:
        if outcome.success:
            LOGGER.debug("Delivered to %s (chat_id=%s)", destination.label, destination.chat_id)
            return
        LOGGER.warning(
            "Delivery to %s dropped reason=%s detail=%s",
            destination.label,
            outcome.reason,
            outcome.error_detail,
        )

    def close(self, wait: bool = True) -> None:
        with self._executor_lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait)

    def __enter__(self) -> "NotificationDispatcher":
        return self

    def __exit__(self, exc_type, exc, exc_tb) -> None:
        self.close()


def build_dispatcher(
    config: NotifyConfig,
    *,
    transport: Optional[Transport] = None,
    registry: Optional[DestinationRegistry] = None,
) -> NotificationDispatcher:
    """Assemble a dispatcher from configuration.

    Raises:
        ValueError: if no transport is given and the bot is disabled or has no token.
    """
    if transport is None:
        if not config.is_bot_enabled():
            raise ValueError("TELEGRAM_BOT_TOKEN must be set and TELEGRAM_BOT_ENABLED must be true.")
        transport = TelegramBotTransport(config.bot_token, timeout=config.request_timeout)

    client = DeliveryClient(
        transport,
        disable_web_page_preview=config.disable_web_page_preview,
        disable_notification=config.disable_notification,
    )
    formatter = MessageFormatter(
        max_length=config.max_message_length,
        include_stack_trace=config.include_stack_trace,
        max_stack_trace_lines=config.max_stack_trace_lines,
        timezone_name=config.timezone,
    )
    limiter = FixedWindowRateLimiter(config.rate_limit, config.rate_window_seconds)
    if registry is None:
        registry = DestinationRegistry.from_config(config)
    return NotificationDispatcher(registry, client, formatter, limiter)


__all__ = [
    "ERROR_GROUP",
    "MAIN_GROUP",
    "MessageKind",
    "NotificationDispatcher",
    "NotificationRequest",
    "REPORT_GROUP",
    "build_dispatcher",
]
