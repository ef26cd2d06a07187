"""Delivery client: transport calls converted into outcome values.

The client never lets a transport exception reach its caller. Media sends
check that the file exists and is readable before any network attempt.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Union

from chatnotify.destinations import Destination
from chatnotify.logging_utils import perf
from chatnotify.transport import Transport

LOGGER = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]


@dataclass(frozen=True)
class DeliveryOutcome:
    """Result of one delivery attempt.

    Attributes:
        success: Whether the remote accepted the message.
        error_detail: Human-readable failure description.
        reason: Failure category, one of the upper-case class constants.
    """

    success: bool
    error_detail: Optional[str] = None
    reason: Optional[str] = None

    PRECONDITION_FAILED = "precondition_failed"
    TRANSPORT_FAILURE = "transport_failure"
    RATE_LIMITED = "rate_limited"
    DISPATCH_ERROR = "dispatch_error"

    @classmethod
    def ok(cls) -> "DeliveryOutcome":
        return cls(success=True)

    @classmethod
    def failed(cls, reason: str, detail: str) -> "DeliveryOutcome":
        return cls(success=False, error_detail=detail, reason=reason)


def _check_file(path: Optional[PathLike]) -> Optional[str]:
    """Return an error string when ``path`` cannot be uploaded, else None."""
    if path is None or str(path) == "":
        return "no file given"
    candidate = Path(path)
    if not candidate.exists():
        return f"file does not exist: {candidate}"
    if not candidate.is_file():
        return f"not a regular file: {candidate}"
    if not os.access(candidate, os.R_OK):
        return f"file is not readable: {candidate}"
    return None


class DeliveryClient:
    """Stateless facade over a ``Transport``; every call returns a ``DeliveryOutcome``."""

    def __init__(
        self,
        transport: Transport,
        *,
        parse_mode: Optional[str] = "HTML",
        disable_web_page_preview: bool = True,
        disable_notification: bool = False,
    ) -> None:
        self._transport = transport
        self._parse_mode = parse_mode
        self._disable_web_page_preview = disable_web_page_preview
        self._disable_notification = disable_notification

    def _attempt(self, destination: Destination, action: str, call: Callable[[], None]) -> DeliveryOutcome:
        try:
            call()
        except Exception as exc:  # noqa: BLE001 - transport errors become outcomes
            LOGGER.debug("%s to %s failed: %s", action, destination.label, exc)
            return DeliveryOutcome.failed(DeliveryOutcome.TRANSPORT_FAILURE, f"{type(exc).__name__}: {exc}")
        return DeliveryOutcome.ok()

    @perf("delivery.send_text", tags={"component": "delivery"})
    def send_text(
        self,
        destination: Destination,
        text: str,
    ) -> DeliveryOutcome:
        return self._attempt(
            destination,
            "send_text",
            lambda: self._transport.send_message(
                destination.chat_id,
                text,
                thread_id=destination.thread_id,
                parse_mode=self._parse_mode,
                disable_web_page_preview=self._disable_web_page_preview,
                disable_notification=self._disable_notification,
            ),
        )

    @perf("delivery.send_photo", tags={"component": "delivery"})
    def send_photo(
        self,
        destination: Destination,
        path: PathLike,
        caption: Optional[str] = None,
    ) -> DeliveryOutcome:
        problem = _check_file(path)
        if problem:
            return DeliveryOutcome.failed(DeliveryOutcome.PRECONDITION_FAILED, problem)
        return self._attempt(
            destination,
            "send_photo",
            lambda: self._transport.send_photo(
                destination.chat_id,
                Path(path),
                thread_id=destination.thread_id,
                caption=caption,
                parse_mode=self._parse_mode,
                disable_notification=self._disable_notification,
            ),
        )

    @perf("delivery.send_document", tags={"component": "delivery"})
    def send_document(
        self,
        destination: Destination,
        path: PathLike,
        caption: Optional[str] = None,
    ) -> DeliveryOutcome:
        problem = _check_file(path)
        if problem:
            return DeliveryOutcome.failed(DeliveryOutcome.PRECONDITION_FAILED, problem)
        return self._attempt(
            destination,
            "send_document",
            lambda: self._transport.send_document(
                destination.chat_id,
                Path(path),
                thread_id=destination.thread_id,
                caption=caption,
                parse_mode=self._parse_mode,
                disable_notification=self._disable_notification,
            ),
        )


__all__ = ["DeliveryClient", "DeliveryOutcome"]
