"""Message rendering for Telegram HTML parse mode.

All user-supplied content is escaped (``&``, ``<`` and ``>``) before it is
placed into a payload, and every payload is truncated to the configured
message length without splitting an HTML entity. Rendering never raises:
values that cannot be turned into text are replaced by a placeholder.
"""

import logging
import traceback
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from typing import Any, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

MAX_MESSAGE_LEN = 4000
MAX_CAPTION_LEN = 1024
TRUNCATION_MARKER = "…"
PLACEHOLDER = "[unrenderable message]"


def escape_markup(text: str) -> str:
    """Escape the characters Telegram HTML treats as markup."""
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def truncate(text: str, limit: int, marker: str = TRUNCATION_MARKER) -> str:
    """Keep the head of ``text`` within ``limit`` characters.

    A cut never lands inside an ``&...;`` entity, so escaped text stays
    escaped after truncation.
    """
    if len(text) <= limit:
        return text
    if limit <= len(marker):
        return marker[: max(limit, 0)]
    cut = text[: limit - len(marker)]
    amp = cut.rfind("&")
    if amp != -1 and ";" not in cut[amp:]:
        cut = cut[:amp]
    return cut + marker


def _safe_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    try:
        return str(value)
    except Exception:  # noqa: BLE001
        return PLACEHOLDER


def _severity_label(severity: Any) -> str:
    if isinstance(severity, int) and not isinstance(severity, bool):
        return logging.getLevelName(severity)
    return _safe_text(severity).upper()


@dataclass(frozen=True)
class ExceptionDetails:
    """Failure cause attached to a log event; frames are innermost first."""

    type_name: str
    message: str
    frames: Tuple[str, ...] = ()

    @classmethod
    def from_exc_info(cls, exc_info: Any) -> Optional["ExceptionDetails"]:
        if not exc_info or not isinstance(exc_info, tuple) or exc_info[0] is None:
            return None
        exc_type, exc_value, exc_tb = exc_info
        frames = tuple(
            f'File "{frame.filename}", line {frame.lineno}, in {frame.name}'
            for frame in reversed(traceback.extract_tb(exc_tb))
        )
        return cls(type_name=exc_type.__name__, message=_safe_text(exc_value), frames=frames)


@dataclass(frozen=True)
class LogEvent:
    """Structured log event handed from the log sink to the formatter."""

    level: str
    logger_name: str
    timestamp_millis: int
    message: str
    exception: Optional[ExceptionDetails] = None

    @classmethod
    def from_record(cls, record: logging.LogRecord, message: Optional[str] = None) -> "LogEvent":
        if message is None:
            try:
                message = record.getMessage()
            except Exception:  # noqa: BLE001 - bad %-args must not break logging
                message = _safe_text(record.msg)
        return cls(
            level=record.levelname,
            logger_name=record.name,
            timestamp_millis=int(record.created * 1000),
            message=message,
            exception=ExceptionDetails.from_exc_info(record.exc_info),
        )


def _resolve_zone(name: str) -> tzinfo:
    if not name or name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"Unknown timezone: {name!r}") from None


class MessageFormatter:
    """Render text and log events into HTML payloads."""

    def __init__(
        self,
        *,
        max_length: int = MAX_MESSAGE_LEN,
        caption_max_length: int = MAX_CAPTION_LEN,
        include_stack_trace: bool = True,
        max_stack_trace_lines: int = 5,
        timezone_name: str = "UTC",
    ) -> None:
        if max_length <= len(TRUNCATION_MARKER) or caption_max_length <= len(TRUNCATION_MARKER):
            raise ValueError("max_length and caption_max_length must leave room for content")
        if max_stack_trace_lines < 0:
            raise ValueError("max_stack_trace_lines must be >= 0")
        self._max_length = max_length
        self._caption_max_length = caption_max_length
        self._include_stack_trace = include_stack_trace
        self._max_stack_trace_lines = max_stack_trace_lines
        self._zone = _resolve_zone(timezone_name)

    @property
    def max_length(self) -> int:
        return self._max_length

    def render(self, value: Any, severity: Optional[str] = None) -> str:
        """Render free text (optionally tagged with a severity) or a ``LogEvent``."""
        if isinstance(value, LogEvent):
            return self.render_event(value)
        body = escape_markup(_safe_text(value))
        prefix = f"<b>[{escape_markup(_severity_label(severity))}]</b> " if severity else ""
        if len(prefix) + len(TRUNCATION_MARKER) >= self._max_length:
            prefix = ""
        return prefix + truncate(body, self._max_length - len(prefix))

    def render_caption(self, caption: Optional[str]) -> Optional[str]:
        if caption is None:
            return None
        return truncate(escape_markup(_safe_text(caption)), self._caption_max_length)

    def format_timestamp(self, timestamp_millis: int) -> str:
        try:
            moment = datetime.fromtimestamp(timestamp_millis / 1000.0, tz=self._zone)
        except (OverflowError, OSError, ValueError, TypeError):
            return PLACEHOLDER
        return moment.isoformat(timespec="milliseconds")

    def render_event(self, event: LogEvent) -> str:
        """Render a log event: level, logger, timestamp, message and stack frames.

        When the result is too long the message body is shortened first, then
        the stack section is dropped.
        """
        level = escape_markup(_safe_text(event.level))
        logger_name = escape_markup(_safe_text(event.logger_name))
        header = f"<b>[{level}]</b> {logger_name}\n<i>{escape_markup(self.format_timestamp(event.timestamp_millis))}</i>"
        body = escape_markup(_safe_text(event.message))
        stack = self._render_stack(event.exception)

        for stack_section in (stack, ""):
            frame = f"{header}\n\n<pre></pre>"
            if stack_section:
                frame += f"\n\n{stack_section}"
            budget = self._max_length - len(frame)
            if budget >= len(body):
                return self._assemble(header, body, stack_section)
            if budget > len(TRUNCATION_MARKER):
                return self._assemble(header, truncate(body, budget), stack_section)

        plain = escape_markup(f"[{_safe_text(event.level)}] {_safe_text(event.logger_name)}: {_safe_text(event.message)}")
        return truncate(plain, self._max_length)

    @staticmethod
    def _assemble(header: str, body: str, stack_section: str) -> str:
        text = f"{header}\n\n<pre>{body}</pre>"
        if stack_section:
            text += f"\n\n{stack_section}"
        return text

    def _render_stack(self, exception: Optional[ExceptionDetails]) -> str:
        if not self._include_stack_trace or exception is None:
            return ""
        summary = escape_markup(_safe_text(exception.type_name))
        if exception.message:
            summary += f": {escape_markup(_safe_text(exception.message))}"
        frames = [escape_markup(_safe_text(f)) for f in exception.frames[: self._max_stack_trace_lines]]
        section = f"<b>Stacktrace:</b> {summary}"
        if frames:
            section += "\n<pre>" + "\n".join(frames) + "</pre>"
        return section


__all__ = [
    "ExceptionDetails",
    "LogEvent",
    "MAX_CAPTION_LEN",
    "MAX_MESSAGE_LEN",
    "MessageFormatter",
    "PLACEHOLDER",
    "TRUNCATION_MARKER",
    "escape_markup",
    "truncate",
]
