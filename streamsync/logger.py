"""Asynchronous, levelled logging with a bounded buffer."""

from __future__ import annotations

import os
import queue
import re
import sys
import threading
import time
from enum import IntEnum
from typing import Callable, Mapping

DEFAULT_BUFFER_SIZE = 1000
_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


class LogLevel(IntEnum):
    """Severity of a log entry; lower values are more severe."""

    ERROR = 0
    WARN = 1
    INFO = 2
    DEBUG = 3


def _write_stderr(entry: str) -> None:
    sys.stderr.write(f"{time.strftime('%Y/%m/%d %H:%M:%S')} {entry}\n")
    sys.stderr.flush()


class AsyncLogger:
    """Writes entries from a background thread; entries that find the buffer full are dropped."""

    def __init__(
        self,
        level: LogLevel = LogLevel.INFO,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        sink: Callable[[str], None] | None = None,
    ) -> None:
        if buffer_size < 1:
            raise ValueError("buffer size must be at least 1")
        self.level = LogLevel(level)
        self.buffer_size = buffer_size
        self._sink = sink or _write_stderr
        self._queue: queue.Queue[str] = queue.Queue(maxsize=buffer_size)
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._process, name="async-logger", daemon=True)
        self._thread.start()

    def _process(self) -> None:
        while not self._stop.is_set() or not self._queue.empty():
            try:
                self._sink(self._queue.get(timeout=0.05))
            except queue.Empty:
                continue

    def log(self, level: LogLevel, message: str, *args: object) -> None:
        """Queue an entry if ``level`` passes the logger's threshold."""
        if level > self.level or self._stop.is_set():
            return
        try:
            text = message % args if args else message
        except (TypeError, ValueError):
            text = " ".join([message, *map(str, args)])
        try:
            self._queue.put_nowait(f"[{LogLevel(level).name}] {text}")
        except queue.Full:
            pass

    def shutdown(self) -> None:
        """Write out what is buffered and stop the writer thread."""
        self._stop.set()
        self._thread.join()

    def __enter__(self) -> "AsyncLogger":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()


_global_logger: AsyncLogger | None = None
_global_lock = threading.Lock()


def init_logger(environ: Mapping[str, str] | None = None) -> AsyncLogger:
    """Create the process-wide logger once, from LOG_LEVEL and LOG_BUFFER_SIZE."""
    global _global_logger
    with _global_lock:
        if _global_logger is None:
            env = os.environ if environ is None else environ
            buffer_size = DEFAULT_BUFFER_SIZE
            match = _LEADING_INT.match(env.get("LOG_BUFFER_SIZE", ""))
            if match and int(match.group(1)) >= 1:
                buffer_size = int(match.group(1))
            raw_level = env.get("LOG_LEVEL", "")
            level = LogLevel[raw_level.upper()] if raw_level in ("error", "warn", "info", "debug") else LogLevel.INFO
            _global_logger = AsyncLogger(level, buffer_size)
        return _global_logger


def get_logger() -> AsyncLogger:
    """Return the process-wide logger, creating it if needed."""
    return init_logger()


def log_error(message: str, *args: object) -> None:
    get_logger().log(LogLevel.ERROR, message, *args)


def log_warn(message: str, *args: object) -> None:
    get_logger().log(LogLevel.WARN, message, *args)


def log_info(message: str, *args: object) -> None:
    get_logger().log(LogLevel.INFO, message, *args)


def log_debug(message: str, *args: object) -> None:
    get_logger().log(LogLevel.DEBUG, message, *args)