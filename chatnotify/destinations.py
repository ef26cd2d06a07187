"""Chat destinations and the registry that resolves them.

A ``Destination`` is a chat identifier plus an optional topic (thread) id.
The registry is built once at startup from configuration and is read-only
afterwards, so lookups need no locking.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, Optional, Tuple

from chatnotify.config import NotifyConfig, parse_topic_id


class DestinationNotFound(LookupError):
    """Raised when a name or chat id is not present in the registry."""


@dataclass(frozen=True)
class Destination:
    """Resolved chat target.

    Args:
        chat_id: Telegram chat identifier (stored as a string).
        thread_id: Topic id inside a forum group; values that are not
            positive integers are treated as absent.
        name: Optional logical name (``main``, ``report``, ``error``, ...).
    """

    chat_id: str
    thread_id: Optional[int] = None
    name: Optional[str] = None

    def __post_init__(self) -> None:
        chat_id = "" if self.chat_id is None else str(self.chat_id).strip()
        if not chat_id:
            raise ValueError("Destination chat_id must be provided")
        object.__setattr__(self, "chat_id", chat_id)
        object.__setattr__(self, "thread_id", _normalize_thread_id(self.thread_id))

    @property
    def has_topic(self) -> bool:
        return self.thread_id is not None

    @property
    def label(self) -> str:
        """Human label used in logs and broadcast results."""
        return self.name or self.chat_id


def _normalize_thread_id(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    return parse_topic_id(str(value))


class DestinationRegistry:
    """Immutable lookup of configured destinations by name and chat id."""

    def __init__(self, destinations: Iterable[Destination]) -> None:
        ordered = tuple(destinations)
        by_name: Dict[str, Destination] = {}
        by_id: Dict[str, Destination] = {}
        for destination in ordered:
            if destination.name is not None:
                if destination.name in by_name:
                    raise ValueError(f"Duplicate destination name: {destination.name!r}")
                by_name[destination.name] = destination
            # first registration wins for shared chat ids
            by_id.setdefault(destination.chat_id, destination)
        self._destinations: Tuple[Destination, ...] = ordered
        self._by_name = by_name
        self._by_id = by_id

    @classmethod
    def from_config(cls, config: NotifyConfig) -> "DestinationRegistry":
        """Build the registry from the main/report/error and ad-hoc groups."""
        return cls(
            Destination(chat_id=group.chat_id, thread_id=group.topic_id, name=group.name)
            for group in config.groups()
        )

    def resolve_by_name(self, name: str) -> Destination:
        try:
            return self._by_name[name]
        except (KeyError, TypeError):
            raise DestinationNotFound(f"Destination not found: {name!r}") from None

    def resolve_by_id(self, chat_id: Any) -> Destination:
        key = "" if chat_id is None else str(chat_id).strip()
        try:
            return self._by_id[key]
        except KeyError:
            raise DestinationNotFound(f"Destination not found by id: {chat_id!r}") from None

    def resolve(self, target: Any) -> Destination:
        """Resolve a ``Destination``, a logical name, or a chat id (in that order)."""
        if isinstance(target, Destination):
            return target
        if isinstance(target, str) and target in self._by_name:
            return self._by_name[target]
        return self.resolve_by_id(target)

    def all(self) -> Tuple[Destination, ...]:
        return self._destinations

    def __iter__(self) -> Iterator[Destination]:
        return iter(self._destinations)

    def __len__(self) -> int:
        return len(self._destinations)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name


__all__ = ["Destination", "DestinationNotFound", "DestinationRegistry"]
