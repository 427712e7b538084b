import threading

import pytest

from streamsync.logger import (
    AsyncLogger,
    LogLevel,
    get_logger,
    init_logger,
)


class _BlockingSink:
    """Collects entries and holds the worker on the first one until released."""

    def __init__(self, blocking_entry):
        self.entries = []
        self.blocking_entry = blocking_entry
        self.entered = threading.Event()
        self.release = threading.Event()

    def __call__(self, entry):
        self.entries.append(entry)
        if entry == self.blocking_entry:
            self.entered.set()
            self.release.wait(2)


def test_levels_follow_source_order():
    entries = []
    logger = AsyncLogger(LogLevel.WARN, 10, entries.append)
    for level in reversed(list(LogLevel)):
        logger.log(level, "level %s", level.value)
    logger.shutdown()
    assert entries == ["[WARN] level 1", "[ERROR] level 0"]


def test_entry_is_prefixed_with_level_name():
    entries = []
    logger = AsyncLogger(LogLevel.DEBUG, 10, entries.append)
    logger.log(LogLevel.ERROR, "boom %d", 5)
    logger.log(LogLevel.DEBUG, "plain")
    logger.shutdown()
    assert entries == ["[ERROR] boom 5", "[DEBUG] plain"]


def test_entries_above_threshold_are_dropped():
    entries = []
    logger = AsyncLogger(LogLevel.INFO, 10, entries.append)
    logger.log(LogLevel.DEBUG, "hidden")
    logger.log(LogLevel.WARN, "shown")
    logger.log(LogLevel.INFO, "also shown")
    logger.shutdown()
    assert entries == ["[WARN] shown", "[INFO] also shown"]


def test_shutdown_drains_in_order():
    entries = []
    logger = AsyncLogger(LogLevel.INFO, 100, entries.append)
    for index in range(50):
        logger.log(LogLevel.INFO, "entry %s", index)
    logger.shutdown()
    assert entries == [f"[INFO] entry {index}" for index in range(50)]


def test_full_buffer_discards_entries():
    sink = _BlockingSink("[INFO] a")
    logger = AsyncLogger(LogLevel.INFO, 1, sink)
    logger.log(LogLevel.INFO, "a")
    assert sink.entered.wait(2) is True
    logger.log(LogLevel.INFO, "b")
    logger.log(LogLevel.INFO, "c")
    sink.release.set()
    logger.shutdown()
    assert sink.entries == ["[INFO] a", "[INFO] b"]
    assert "[INFO] c" not in sink.entries


def test_context_manager_shuts_down():
    entries = []
    with AsyncLogger(LogLevel.INFO, 5, entries.append) as logger:
        logger.log(LogLevel.WARN, "x")
    logger.log(LogLevel.WARN, "after")
    assert entries == ["[WARN] x"]


def test_invalid_buffer_size_rejected():
    with pytest.raises(ValueError):
        AsyncLogger(LogLevel.INFO, 0)


def test_init_logger_is_created_once():
    first = init_logger({"LOG_LEVEL": "debug"})
    second = init_logger({"LOG_LEVEL": "error"})
    assert first is second
    assert get_logger() is first