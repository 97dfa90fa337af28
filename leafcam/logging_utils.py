from __future__ import annotations

import logging
import threading
from collections import deque

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class SessionLogBufferHandler(logging.Handler):
    """Keep the most recent formatted records in memory for troubleshooting."""

    def __init__(self, capacity: int = 500) -> None:
        super().__init__()
        self._records: deque[str] = deque(maxlen=max(1, capacity))
        self._records_lock = threading.Lock()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = self.format(record)
        except Exception:
            self.handleError(record)
            return
        with self._records_lock:
            self._records.append(message)

    def lines(self, limit: int | None = None) -> list[str]:
        with self._records_lock:
            items = list(self._records)
        if limit is not None and limit >= 0:
            return items[-limit:] if limit else []
        return items

    def clear(self) -> None:
        with self._records_lock:
            self._records.clear()


def configure_logging(verbose: bool = False) -> None:
    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=logging.DEBUG if verbose else logging.INFO, format=LOG_FORMAT
        )
    elif verbose:
        logging.getLogger().setLevel(logging.DEBUG)


def install_session_log_buffer(
    capacity: int = 500,
    formatter: logging.Formatter | None = None,
) -> SessionLogBufferHandler:
    handler = SessionLogBufferHandler(capacity=capacity)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(formatter or logging.Formatter(LOG_FORMAT))
    logging.getLogger().addHandler(handler)
    logging.getLogger(__name__).debug("Session log buffering enabled; keeping %d records", capacity)
    return handler


__all__ = [
    "LOG_FORMAT",
    "SessionLogBufferHandler",
    "configure_logging",
    "install_session_log_buffer",
]
