"""Logging handler that forwards selected records to a chat destination.

``LogEventSink`` is a ``logging.Handler``. ``emit`` only filters the record
and puts a ``LogEvent`` on a bounded queue; dedicated worker threads drain
the queue and call the dispatcher, so a slow or unreachable Telegram API
never stalls the code that logged. When the queue is full the event is
dropped: this is a best-effort side channel, not the primary log output.

Records from the ``chatnotify`` logger hierarchy, and anything logged while
the sink itself is delivering, are ignored so delivery diagnostics cannot feed
back into the sink.
"""

import logging
import queue
import threading
import time
from pathlib import Path
from typing import FrozenSet, Iterable, List, Optional

from chatnotify.config import load_config, parse_levels
from chatnotify.destinations import Destination, DestinationNotFound
from chatnotify.dispatcher import ERROR_GROUP, NotificationDispatcher, NotificationRequest, build_dispatcher
from chatnotify.formatting import LogEvent

LOGGER = logging.getLogger(__name__)

_PACKAGE_LOGGER = __name__.split(".", 1)[0]
_POLL_SECONDS = 0.1


class LogEventSink(logging.Handler):
    """Forward accepted log records to ``destination`` through ``dispatcher``.

    Args:
        dispatcher: Dispatcher used for delivery.
        destination: Target for log alerts (normally the error group).
        levels: Allowed level names (``"ERROR,WARN"`` style string or a set).
        queue_size: Bound of the hand-off queue.
        workers: Number of delivery threads; FIFO holds per worker only.
        async_enabled: When False, records are delivered inline in ``emit``.
        shutdown_timeout: Seconds ``close`` waits for the queue to drain.
    """

    def __init__(
        self,
        dispatcher: Optional[NotificationDispatcher],
        destination: Optional[Destination],
        *,
        levels: Iterable[str] = frozenset({"ERROR", "WARNING"}),
        queue_size: int = 1000,
        workers: int = 1,
        async_enabled: bool = True,
        shutdown_timeout: float = 5.0,
    ) -> None:
        super().__init__(level=logging.NOTSET)
        if queue_size < 1 or workers < 1:
            raise ValueError("queue_size and workers must be positive")
        self._dispatcher = dispatcher
        self._destination = destination
        self._levels: FrozenSet[str] = parse_levels(levels) if isinstance(levels, str) else parse_levels(",".join(levels))
        self._queue: "queue.Queue[LogEvent]" = queue.Queue(maxsize=queue_size)
        self._worker_count = workers
        self._async_enabled = async_enabled
        self._shutdown_timeout = shutdown_timeout
        self._workers: List[threading.Thread] = []
        self._local = threading.local()
        self._stop_event = threading.Event()
        self._abort_event = threading.Event()
        self._started = False
        self._counter_lock = threading.Lock()
        self.dropped = 0
        self.discarded = 0

    @property
    def levels(self) -> FrozenSet[str]:
        return self._levels

    @property
    def started(self) -> bool:
        return self._started

    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> "LogEventSink":
        """Launch worker threads (no-op when already started)."""
        if self._started:
            return self
        self._stop_event.clear()
        self._abort_event.clear()
        if self._async_enabled:
            self._workers = [
                threading.Thread(target=self._run, name=f"chatnotify-sink-{i}", daemon=True)
                for i in range(self._worker_count)
            ]
            for worker in self._workers:
                worker.start()
        self._started = True
        return self

    def _accepts(self, record: logging.LogRecord) -> bool:
        if record.levelname not in self._levels:
            return False
        if record.name == _PACKAGE_LOGGER or record.name.startswith(_PACKAGE_LOGGER + "."):
            return False
        return not getattr(self._local, "delivering", False)

    def emit(self, record: logging.LogRecord) -> None:
        if not self._started or self._dispatcher is None or self._destination is None:
            return
        if not self._accepts(record):
            return
        try:
            message = self.format(record) if self.formatter else None
            event = LogEvent.from_record(record, message=message)
        except Exception:  # never raise inside logging
            self.handleError(record)
            return

        if not self._async_enabled:
            self._deliver(event)
            return
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            with self._counter_lock:
                self.dropped += 1
                total = self.dropped
            LOGGER.warning(
                "Log sink queue full; dropped %s event from %s (total dropped=%s)",
                event.level,
                event.logger_name,
                total,
            )
            return
        if not self._started and not any(worker.is_alive() for worker in list(self._workers)):
            # stop() finished draining between the started check and the enqueue
            self._discard_pending()

    def _deliver(self, event: LogEvent) -> None:
        self._local.delivering = True
        try:
            self._dispatcher.dispatch(NotificationRequest(self._destination, body=event))
        except Exception as exc:  # noqa: BLE001 - keep the worker alive
            LOGGER.error("Log sink delivery failed: %s", exc)
        finally:
            self._local.delivering = False

    def _run(self) -> None:
        while not self._abort_event.is_set():
            try:
                event = self._queue.get(timeout=_POLL_SECONDS)
            except queue.Empty:
                if self._stop_event.is_set():
                    return
                continue
            try:
                if not self._abort_event.is_set():
                    self._deliver(event)
            finally:
                self._queue.task_done()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop accepting records, drain for up to ``timeout`` seconds, discard the rest."""
        if not self._started:
            return
        self._started = False
        wait = self._shutdown_timeout if timeout is None else timeout
        deadline = time.monotonic() + max(wait, 0.0)
        self._stop_event.set()
        for worker in self._workers:
            worker.join(max(deadline - time.monotonic(), 0.0))
        if any(worker.is_alive() for worker in self._workers):
            self._abort_event.set()

        self._discard_pending()
        self._workers = []

    def _discard_pending(self) -> int:
        discarded = 0
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                break
            self._queue.task_done()
            discarded += 1
        if discarded:
            with self._counter_lock:
                self.discarded += discarded
            LOGGER.warning("Log sink stopped with %s undelivered events discarded", discarded)
        return discarded

    def close(self) -> None:
        try:
            self.stop()
        finally:
            super().close()


_install_attempted = False
_installed_sink: Optional[LogEventSink] = None


def install_telegram_log_sink_from_env(
    env_file: Optional[Path] = None,
    *,
    logger: Optional[logging.Logger] = None,
) -> Optional[LogEventSink]:
    """Install a started ``LogEventSink`` on the root logger when configured.

    Returns the sink, or None when Telegram logging is disabled or the error
    group is missing. Safe to call multiple times; subsequent calls return
    the first result.
    """
    global _install_attempted, _installed_sink
    if _install_attempted:
        return _installed_sink

    _install_attempted = True
    config = load_config(env_file)
    if not config.is_logging_enabled():
        LOGGER.warning("Telegram log alerts disabled: TELEGRAM_LOGGING_ENABLED is off or TELEGRAM_BOT_TOKEN is missing")
        return None

    try:
        dispatcher = build_dispatcher(config)
        destination = dispatcher.registry.resolve_by_name(ERROR_GROUP)
    except (ValueError, DestinationNotFound) as exc:
        LOGGER.error("Failed to enable Telegram log alerts: %s", exc)
        return None

    sink = LogEventSink(
        dispatcher,
        destination,
        levels=config.logging_levels,
        queue_size=config.queue_size,
        workers=config.sink_workers,
        async_enabled=config.async_enabled,
        shutdown_timeout=config.shutdown_timeout,
    ).start()
    (logger or logging.getLogger()).addHandler(sink)
    LOGGER.info("Telegram log alerts enabled for chat_id=%s levels=%s", destination.chat_id, ",".join(sorted(sink.levels)))
    _installed_sink = sink
    return sink


__all__ = ["LogEventSink", "install_telegram_log_sink_from_env"]
