"""Bounded in-process log buffer for human-facing diagnostics.

The buffer is a loguru sink: ``install()`` attaches it, ``remove()``
detaches it. It is owned by whoever creates it (the CLI, the timer
service, a test) and is never module-level state. Entries are newest
first, matching what ``weeklybot run --logs`` prints.
"""

from __future__ import annotations

import threading
from collections import deque
from typing import Any

from loguru import logger

LOG_FORMAT = "[{time:YYYY-MM-DD HH:mm:ss!UTC}] {level}: {message}"


class LogBuffer:
    """Thread-safe ring buffer of formatted log lines.

    Usage:
        buffer = LogBuffer(max_entries=50)
        buffer.install(level="INFO")
        ...
        buffer.entries()   # newest first
        buffer.remove()
    """

    def __init__(self, max_entries: int = 50):
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self._entries: deque[str] = deque(maxlen=max_entries)
        self._lock = threading.Lock()
        self._sink_id: int | None = None

    @property
    def max_entries(self) -> int:
        return self._entries.maxlen or 0

    @property
    def installed(self) -> bool:
        return self._sink_id is not None

    def append(self, line: str) -> None:
        """Add a line; the oldest entry is dropped once full."""
        with self._lock:
            self._entries.append(line.rstrip("\n"))

    def write(self, message: Any) -> None:
        """loguru sink callable (message is a formatted str subclass)."""
        self.append(str(message))

    def entries(self) -> list[str]:
        """Snapshot of buffered lines, newest first."""
        with self._lock:
            return list(reversed(self._entries))

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def install(self, level: str = "INFO") -> int:
        """Attach as a loguru sink. Idempotent; returns the sink id."""
        if self._sink_id is None:
            self._sink_id = logger.add(self.write, level=level, format=LOG_FORMAT)
        return self._sink_id

    def remove(self) -> None:
        """Detach from loguru; buffered entries are kept."""
        if self._sink_id is not None:
            logger.remove(self._sink_id)
            self._sink_id = None

    def __enter__(self) -> "LogBuffer":
        self.install()
        return self

    def __exit__(self, *exc: object) -> None:
        self.remove()
