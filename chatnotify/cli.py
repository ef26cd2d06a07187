"""Command-line entrypoint for sending one-off notifications."""

import argparse
import logging
from typing import List, Optional, Sequence, Tuple

from chatnotify.config import load_config
from chatnotify.delivery import DeliveryOutcome
from chatnotify.destinations import DestinationNotFound
from chatnotify.dispatcher import NotificationDispatcher, NotificationRequest, build_dispatcher
from chatnotify.logging_utils import configure_logging, perf_span
from chatnotify.transport import Transport

LOGGER = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_DELIVERY_FAILED = 1
EXIT_NOT_FOUND = 2


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Send a notification to configured Telegram groups.")
    parser.add_argument(
        "message",
        nargs="?",
        default="",
        help="Message text, or the caption when --photo/--document is given.",
    )
    target = parser.add_mutually_exclusive_group()
    target.add_argument(
        "--group",
        default="main",
        help="Logical group name (main, report, error or a TELEGRAM_GROUPS name; default: main).",
    )
    target.add_argument("--chat-id", help="Send to the configured group with this chat id.")
    target.add_argument("--all", action="store_true", help="Broadcast the text to every configured group.")
    media = parser.add_mutually_exclusive_group()
    media.add_argument("--photo", help="Path of an image to send.")
    media.add_argument("--document", help="Path of a file to send.")
    parser.add_argument("--severity", help="Optional level tag shown before the text (e.g. ERROR).")
    parser.add_argument("--no-console", action="store_true", help="Only log to the run log file.")
    return parser.parse_args(argv)


def _send(dispatcher: NotificationDispatcher, args: argparse.Namespace) -> List[Tuple[str, DeliveryOutcome]]:
    if args.all:
        return dispatcher.broadcast_to_all_groups(args.message, severity=args.severity)

    if args.chat_id:
        target = dispatcher.registry.resolve_by_id(args.chat_id)
    else:
        target = dispatcher.registry.resolve_by_name(args.group)

    if args.photo:
        outcome = dispatcher.send_photo(target, args.photo, caption=args.message or None)
    elif args.document:
        outcome = dispatcher.send_document(target, args.document, caption=args.message or None)
    else:
        outcome = dispatcher.dispatch(NotificationRequest(target, body=args.message, severity=args.severity))
    return [(target.label, outcome)]


def main(argv: Optional[Sequence[str]] = None, *, transport: Optional[Transport] = None) -> int:
    args = parse_args(argv)
    config = load_config()
    configure_logging(config, include_console=not args.no_console)

    if not args.message and not (args.photo or args.document):
        LOGGER.error("Nothing to send: give a message, --photo or --document")
        return EXIT_DELIVERY_FAILED

    try:
        dispatcher = build_dispatcher(config, transport=transport)
    except ValueError as exc:
        LOGGER.error("Cannot send notification: %s", exc)
        return EXIT_DELIVERY_FAILED

    with dispatcher:
        try:
            with perf_span("cli.send", tags={"app": config.app_name}, logger=LOGGER):
                results = _send(dispatcher, args)
        except DestinationNotFound as exc:
            LOGGER.error("%s", exc)
            return EXIT_NOT_FOUND

    for label, outcome in results:
        if outcome.success:
            LOGGER.info("sent to %s", label)
        else:
            LOGGER.error("failed for %s: %s (%s)", label, outcome.error_detail, outcome.reason)
    if results and all(outcome.success for _, outcome in results):
        return EXIT_OK
    return EXIT_DELIVERY_FAILED


__all__ = ["main", "parse_args"]
