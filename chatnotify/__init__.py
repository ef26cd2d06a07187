"""Route log events and operator notifications to Telegram groups.

Typical wiring:

    config = load_config()
    dispatcher = build_dispatcher(config)
    dispatcher.send_to_report_group("nightly export finished")
    install_telegram_log_sink_from_env()
"""

from chatnotify.config import NotifyConfig, load_config
from chatnotify.delivery import DeliveryClient, DeliveryOutcome
from chatnotify.destinations import Destination, DestinationNotFound, DestinationRegistry
from chatnotify.dispatcher import MessageKind, NotificationDispatcher, NotificationRequest, build_dispatcher
from chatnotify.formatting import LogEvent, MessageFormatter, escape_markup
from chatnotify.rate_limit import FixedWindowRateLimiter
from chatnotify.sink import LogEventSink, install_telegram_log_sink_from_env
from chatnotify.transport import TelegramBotTransport, Transport, TransportError

__all__ = [
    "DeliveryClient",
    "DeliveryOutcome",
    "Destination",
    "DestinationNotFound",
    "DestinationRegistry",
    "FixedWindowRateLimiter",
    "LogEvent",
    "LogEventSink",
    "MessageFormatter",
    "MessageKind",
    "NotificationDispatcher",
    "NotificationRequest",
    "NotifyConfig",
    "TelegramBotTransport",
    "Transport",
    "TransportError",
    "build_dispatcher",
    "escape_markup",
    "install_telegram_log_sink_from_env",
    "load_config",
]
