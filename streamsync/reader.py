"""Consumer-group readers that move stream entries into the shared buffer."""

from __future__ import annotations

import queue
import re
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable

import redis

from .config import Config
from .logger import log_error, log_info, log_warn
from .metrics import Metrics

TIMESTAMP_KEY = '"Event-Date-Timestamp":"'
METRICS_UPDATE_INTERVAL = 1.0
_INTEGER = re.compile(r"[+-]?\d+")
_FAILURES = (redis.RedisError, OSError)


@dataclass
class Message:
    """One stream entry on its way from the local to the remote instance."""

    stream: str
    id: str
    values: dict[str, str]
    read_time: float = field(default_factory=time.time)
    event_timestamp: int = 0


def _parse_timestamp(event: str) -> int | None:
    start = event.find(TIMESTAMP_KEY)
    if start < 0:
        return None
    start += len(TIMESTAMP_KEY)
    end = event.find('"', start)
    raw = event[start:end] if end >= 0 else ""
    if not _INTEGER.fullmatch(raw) or not -(2**63) <= int(raw) < 2**63:
        return None
    return int(raw) * 1000


def extract_event_timestamp(event: str) -> int:
    """Return the event's ``Event-Date-Timestamp`` (microseconds) as nanoseconds, or 0."""
    return (_parse_timestamp(event) if event else None) or 0


def _text(value: Any) -> str:
    return value.decode() if isinstance(value, bytes) else str(value)


class Reader:
    """Reads new entries for one consumer and puts them in the buffer without blocking."""

    def __init__(
        self,
        client: Any,
        buffer: queue.Queue,
        worker_id: int,
        config: Config,
        consumer: str,
        metrics: Metrics,
        stop_event: threading.Event,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.client = client
        self.buffer = buffer
        self.worker_id = worker_id
        self.config = config
        self.consumer = consumer
        self.metrics = metrics
        self.stop_event = stop_event
        self._clock = clock
        self._streams = {stream: ">" for stream in config.streams}
        block_ms = config.processing.reader_block_time * 1000
        self._block = int(block_ms) if block_ms >= 0 else None

    def read_once(self) -> int:
        """Read one batch and return how many entries went into the buffer."""
        try:
            response = self.client.xreadgroup(
                self.config.redis.group,
                self.consumer,
                self._streams,
                count=self.config.processing.reader_batch_size,
                block=self._block,
                noack=True,
            )
        except _FAILURES as exc:
            log_error("Reader %d error: %s", self.worker_id, exc)
            return 0

        items = response.items() if isinstance(response, dict) else (response or [])
        queued = 0
        for stream, entries in items:
            for raw_id, fields in entries:
                message_id = _text(raw_id)
                event = (fields or {}).get("event", "")
                if not isinstance(event, str):
                    event = ""
                timestamp = extract_event_timestamp(event)
                if timestamp:
                    latency = self._clock() - timestamp / 1e9
                    if latency > self.config.processing.reader_max_latency:
                        log_warn(
                            "High reader latency since event trigger detected for message %s: %.6fs",
                            message_id, latency,
                        )
                if self.stop_event.is_set():
                    return queued
                message = Message(_text(stream), message_id, {"event": event}, self._clock(), timestamp)
                try:
                    self.buffer.put_nowait(message)
                    queued += 1
                except queue.Full:
                    log_warn("Buffer full, message discarded: %s", message_id)
        return queued

    def run(self) -> None:
        """Read until the stop event is set, reporting the buffer size every second."""
        last_update = time.monotonic()
        while not self.stop_event.is_set():
            if time.monotonic() - last_update >= METRICS_UPDATE_INTERVAL:
                self.metrics.set_queue_size(self.buffer.qsize())
                last_update = time.monotonic()
                continue
            self.read_once()
        log_info("Stopping reader %d after cleanup", self.worker_id)