from __future__ import annotations

import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from .models import MAX_LOG_ENTRIES

INFO = "info"
SUCCESS = "success"
ERROR = "error"
COMMAND = "command"

KIND_LABELS = {INFO: "INF", SUCCESS: "OK", ERROR: "ERR", COMMAND: "CMD"}

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

Listener = Callable[["LogEntry"], None]


@dataclass(frozen=True)
class LogEntry:
    kind: str
    message: str
    details: str = ""
    timestamp: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def label(self) -> str:
        return KIND_LABELS.get(self.kind, "INF")


class LogStore:
    """Bounded command log. The oldest entry is evicted once capacity is hit."""

    def __init__(self, capacity: int = MAX_LOG_ENTRIES) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._entries: deque[LogEntry] = deque(maxlen=capacity)
        self._listeners: list[Listener] = []

    @property
    def capacity(self) -> int:
        return self._entries.maxlen or 0

    def __len__(self) -> int:
        return len(self._entries)

    def entries(self) -> list[LogEntry]:
        """Newest first."""
        return list(reversed(self._entries))

    def add(self, entry: LogEntry) -> None:
        self._entries.append(entry)
        for listener in list(self._listeners):
            listener(entry)

    def clear(self) -> None:
        self._entries.clear()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe


def _kind_for(record: logging.LogRecord) -> str:
    kind = getattr(record, "kind", None)
    if kind in KIND_LABELS:
        return kind
    if record.levelno >= logging.ERROR:
        return ERROR
    return INFO


class LogStoreHandler(logging.Handler):
    def __init__(self, store: LogStore, level: int = logging.NOTSET) -> None:
        super().__init__(level)
        self.store = store

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = record.getMessage()
            details = ""
            if record.exc_info and record.exc_info[1] is not None:
                details = str(record.exc_info[1])
            self.store.add(
                LogEntry(
                    kind=_kind_for(record),
                    message=message,
                    details=details,
                    timestamp=datetime.fromtimestamp(record.created),
                )
            )
        except Exception:
            self.handleError(record)


def setup_logging(
    store: Optional[LogStore] = None, level: str = "info"
) -> logging.Logger:
    """Route the package logger to the command log, or to stderr when headless."""
    logger = logging.getLogger("lazycontext")
    logger.setLevel(LOG_LEVELS.get(level.lower(), logging.INFO))
    for handler in list(logger.handlers):
        if isinstance(handler, LogStoreHandler):
            logger.removeHandler(handler)
    if store is not None:
        logger.addHandler(LogStoreHandler(store))
        logger.propagate = False
    else:
        logging.basicConfig(format=LOG_FORMAT)
        logger.propagate = True
    return logger
