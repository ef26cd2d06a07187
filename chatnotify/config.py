"""Configuration utilities for the chat notification pipeline.

This module reads environment variables (optionally from an `.env` file) and
produces a frozen configuration object consumed by the dispatcher, the log
sink and the CLI.

See `.env.example` for supported keys, including `TELEGRAM_BOT_TOKEN`, the
main/report/error group identifiers (`TELEGRAM_GROUP_ID`,
`TELEGRAM_REPORT_GROUP_ID`, `TELEGRAM_ERROR_GROUP_ID` and their `*_TOPIC_ID`
companions), ad-hoc `TELEGRAM_GROUPS`, sink and rate-limit tuning, plus
`LOG_DIR`, `LOG_LEVEL` and `APP_NAME` for local logging.

Usage example:

    from chatnotify.config import load_config

    config = load_config()
    dispatcher = build_dispatcher(config)
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, FrozenSet, Iterable, Mapping, MutableMapping, Optional, Tuple

REPO_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_ENV_FILE = REPO_ROOT / ".env"

DEFAULT_LOGGING_LEVELS = "ERROR,WARN"

_LEVEL_ALIASES = {
    "WARN": "WARNING",
    "FATAL": "CRITICAL",
}
_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _load_env_file(path: Path) -> Dict[str, str]:
    """Parse a dotenv-style file into a dictionary."""
    if not path.exists():
        return {}

    data: Dict[str, str] = {}
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        data[key.strip()] = value.strip().strip("\"'")
    return data


def _merge_envs(dotenv_values: Mapping[str, str], env: MutableMapping[str, str]) -> Dict[str, str]:
    """Merge dotenv values with the current environment, preferring os.environ."""
    merged = dict(dotenv_values)
    merged.update(env)  # os.environ wins
    return merged


def load_environment(env_file: Optional[Path] = None) -> Dict[str, str]:
    """Return dotenv values merged with ``os.environ``."""
    target_file = env_file or DEFAULT_ENV_FILE
    return _merge_envs(_load_env_file(target_file), os.environ)


def _parse_bool(values: Mapping[str, str], key: str, default: bool) -> bool:
    raw = (values.get(key) or "").strip().lower()
    if not raw:
        return default
    if raw in _TRUE_VALUES:
        return True
    if raw in _FALSE_VALUES:
        return False
    raise ValueError(f"{key} must be a boolean, got {values.get(key)!r}")


def _parse_int(values: Mapping[str, str], key: str, default: int, *, minimum: int = 1) -> int:
    raw = (values.get(key) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ValueError(f"{key} must be >= {minimum}, got {value}")
    return value


def _parse_float(values: Mapping[str, str], key: str, default: float) -> float:
    raw = (values.get(key) or "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{key} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{key} must be positive, got {value}")
    return value


def parse_topic_id(raw: Optional[str]) -> Optional[int]:
    """Return a positive topic id, or None when absent or not numeric."""
    if raw is None:
        return None
    text = str(raw).strip()
    if not text:
        return None
    try:
        value = int(text)
    except ValueError:
        return None
    return value if value > 0 else None


def parse_levels(raw: Optional[str]) -> FrozenSet[str]:
    """Parse a comma-separated level list into canonical ``logging`` names.

    ``WARN`` and ``FATAL`` are accepted as aliases of ``WARNING`` and
    ``CRITICAL``. Unknown names raise ``ValueError``.
    """
    levels = set()
    for part in (raw or "").split(","):
        name = part.strip().upper()
        if not name:
            continue
        name = _LEVEL_ALIASES.get(name, name)
        if not isinstance(logging.getLevelName(name), int):
            raise ValueError(f"Unknown logging level: {part.strip()!r}")
        levels.add(name)
    return frozenset(levels)


@dataclass(frozen=True)
class GroupSettings:
    """A configured chat group: logical name, chat id and optional topic."""

    name: str
    chat_id: str
    topic_id: Optional[int] = None


def parse_groups(raw: Optional[str]) -> Tuple[GroupSettings, ...]:
    """Parse ``name=chat_id[:topic_id]`` entries separated by commas."""
    groups = []
    for part in (raw or "").split(","):
        entry = part.strip()
        if not entry:
            continue
        if "=" not in entry:
            raise ValueError(f"TELEGRAM_GROUPS entry must look like name=chat_id[:topic], got {entry!r}")
        name, target = entry.split("=", 1)
        name = name.strip()
        chat_id, _, topic = target.strip().partition(":")
        if not name or not chat_id.strip():
            raise ValueError(f"TELEGRAM_GROUPS entry is missing a name or chat id: {entry!r}")
        groups.append(GroupSettings(name=name, chat_id=chat_id.strip(), topic_id=parse_topic_id(topic)))
    return tuple(groups)


@dataclass(frozen=True)
class NotifyConfig:
    """Application-level configuration values."""

    bot_token: Optional[str] = None
    bot_enabled: bool = True
    main_group: Optional[GroupSettings] = None
    report_group: Optional[GroupSettings] = None
    error_group: Optional[GroupSettings] = None
    extra_groups: Tuple[GroupSettings, ...] = ()
    logging_enabled: bool = False
    logging_levels: FrozenSet[str] = field(default_factory=lambda: parse_levels(DEFAULT_LOGGING_LEVELS))
    include_stack_trace: bool = True
    max_stack_trace_lines: int = 5
    async_enabled: bool = True
    queue_size: int = 1000
    sink_workers: int = 1
    shutdown_timeout: float = 5.0
    max_message_length: int = 4000
    disable_web_page_preview: bool = True
    disable_notification: bool = False
    rate_limit: int = 30
    rate_window_seconds: float = 60.0
    timezone: str = "UTC"
    request_timeout: float = 10.0
    log_directory: Path = REPO_ROOT / "logs"
    log_level: str = "INFO"
    app_name: str = "chatnotify"

    def has_valid_bot_config(self) -> bool:
        return bool(self.bot_token)

    def is_bot_enabled(self) -> bool:
        return self.bot_enabled and self.has_valid_bot_config()

    def is_logging_enabled(self) -> bool:
        return self.logging_enabled and self.has_valid_bot_config()

    def groups(self) -> Iterable[GroupSettings]:
        """Yield every configured group, fixed groups first."""
        for group in (self.main_group, self.report_group, self.error_group):
            if group is not None:
                yield group
        yield from self.extra_groups


def _group(values: Mapping[str, str], name: str, id_key: str, topic_key: str) -> Optional[GroupSettings]:
    chat_id = (values.get(id_key) or "").strip()
    if not chat_id:
        return None
    return GroupSettings(name=name, chat_id=chat_id, topic_id=parse_topic_id(values.get(topic_key)))


def load_config(env_file: Optional[Path] = None) -> NotifyConfig:
    """Load configuration values using environment defaults."""
    merged = load_environment(env_file)

    log_directory = Path(merged.get("LOG_DIR", REPO_ROOT / "logs"))
    if not log_directory.is_absolute():
        log_directory = REPO_ROOT / log_directory

    levels_raw = merged.get("TELEGRAM_LOGGING_LEVELS") or DEFAULT_LOGGING_LEVELS

    return NotifyConfig(
        bot_token=(merged.get("TELEGRAM_BOT_TOKEN") or "").strip() or None,
        bot_enabled=_parse_bool(merged, "TELEGRAM_BOT_ENABLED", True),
        main_group=_group(merged, "main", "TELEGRAM_GROUP_ID", "TELEGRAM_TOPIC_ID"),
        report_group=_group(merged, "report", "TELEGRAM_REPORT_GROUP_ID", "TELEGRAM_REPORT_TOPIC_ID"),
        error_group=_group(merged, "error", "TELEGRAM_ERROR_GROUP_ID", "TELEGRAM_ERROR_TOPIC_ID"),
        extra_groups=parse_groups(merged.get("TELEGRAM_GROUPS")),
        logging_enabled=_parse_bool(merged, "TELEGRAM_LOGGING_ENABLED", False),
        logging_levels=parse_levels(levels_raw),
        include_stack_trace=_parse_bool(merged, "TELEGRAM_INCLUDE_STACK_TRACE", True),
        max_stack_trace_lines=_parse_int(merged, "TELEGRAM_MAX_STACK_TRACE_LINES", 5, minimum=0),
        async_enabled=_parse_bool(merged, "TELEGRAM_LOGGING_ASYNC", True),
        queue_size=_parse_int(merged, "TELEGRAM_QUEUE_SIZE", 1000),
        sink_workers=_parse_int(merged, "TELEGRAM_SINK_WORKERS", 1),
        shutdown_timeout=_parse_float(merged, "TELEGRAM_SHUTDOWN_TIMEOUT", 5.0),
        max_message_length=_parse_int(merged, "TELEGRAM_MAX_MESSAGE_LENGTH", 4000),
        disable_web_page_preview=_parse_bool(merged, "TELEGRAM_DISABLE_WEB_PAGE_PREVIEW", True),
        disable_notification=_parse_bool(merged, "TELEGRAM_DISABLE_NOTIFICATION", False),
        rate_limit=_parse_int(merged, "TELEGRAM_RATE_LIMIT", 30),
        rate_window_seconds=_parse_float(merged, "TELEGRAM_RATE_WINDOW_SECONDS", 60.0),
        timezone=(merged.get("TELEGRAM_TIMEZONE") or "UTC").strip(),
        request_timeout=_parse_float(merged, "TELEGRAM_REQUEST_TIMEOUT", 10.0),
        log_directory=log_directory,
        log_level=merged.get("LOG_LEVEL", "INFO").upper(),
        app_name=merged.get("APP_NAME", "chatnotify"),
    )


__all__ = [
    "GroupSettings",
    "NotifyConfig",
    "REPO_ROOT",
    "load_config",
    "load_environment",
    "parse_groups",
    "parse_levels",
    "parse_topic_id",
]
