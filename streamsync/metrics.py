"""Thread-safe synchronisation counters and their periodic report."""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Any

from .logger import log_info


def _now() -> datetime:
    return datetime.now(timezone.utc).astimezone()


def _rfc3339(moment: datetime) -> str:
    text = moment.replace(microsecond=0).isoformat()
    return text[:-6] + "Z" if text.endswith("+00:00") else text


class Metrics:
    """Counters shared by readers, writers and the report loop."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.messages_processed = 0
        self.errors = 0
        self.queue_size = 0
        self.last_sync_time = _now()

    def record_batch(self, processed: int, errors: int) -> None:
        """Add the outcome of one written batch and mark the sync time."""
        with self._lock:
            self.messages_processed += processed
            self.errors += errors
            self.last_sync_time = _now()

    def record_error(self) -> None:
        with self._lock:
            self.errors += 1

    def set_queue_size(self, size: int) -> None:
        with self._lock:
            self.queue_size = size

    def _snapshot_locked(self) -> dict[str, Any]:
        return {
            "messages_processed": self.messages_processed,
            "errors": self.errors,
            "queue_size": self.queue_size,
            "last_sync": _rfc3339(self.last_sync_time),
        }

    def snapshot(self) -> dict[str, Any]:
        """Return the current counters, with the sync time in RFC 3339 form."""
        with self._lock:
            return self._snapshot_locked()

    def take_report(self) -> dict[str, Any]:
        """Return the current counters and reset the processed count."""
        with self._lock:
            report = self._snapshot_locked()
            self.messages_processed = 0
            return report


def run_reporter(metrics: Metrics, stop_event: threading.Event, interval: float = 5.0) -> None:
    """Log and reset the counters every ``interval`` seconds until ``stop_event`` is set."""
    while not stop_event.wait(interval):
        report = metrics.take_report()
        log_info(
            "Messages processed (last %gs): %d, Errors: %d, Queue size: %d, Last sync: %s",
            interval,
            report["messages_processed"],
            report["errors"],
            report["queue_size"],
            report["last_sync"],
        )