"""In-memory ring buffer of recent log lines, served by the debug endpoint."""

from __future__ import annotations

import logging
import threading
from collections import deque

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class RingBufferHandler(logging.Handler):
    """Keep the last ``capacity`` formatted records."""

    def __init__(self, capacity: int = 200) -> None:
        super().__init__()
        self._lines: deque[str] = deque(maxlen=capacity)
        self._guard = threading.Lock()
        self.setFormatter(logging.Formatter(LOG_FORMAT))

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = self.format(record)
        except Exception:
            self.handleError(record)
            return
        with self._guard:
            self._lines.append(line)

    def lines(self) -> list[str]:
        with self._guard:
            return list(self._lines)

    def clear(self) -> None:
        with self._guard:
            self._lines.clear()


_BUFFER: RingBufferHandler | None = None


def install_log_buffer(capacity: int) -> RingBufferHandler:
    """Attach the process-wide buffer to the root logger (once)."""

    global _BUFFER
    if _BUFFER is None:
        _BUFFER = RingBufferHandler(capacity)
        logging.getLogger().addHandler(_BUFFER)
    return _BUFFER


def get_log_buffer() -> RingBufferHandler | None:
    return _BUFFER
