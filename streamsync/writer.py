"""Writers that copy buffered entries to the remote instance in pipelined batches."""

from __future__ import annotations

import queue
import threading
import time
from typing import Any, Callable

import redis

from .config import Config
from .logger import log_error, log_warn
from .metrics import Metrics
from .reader import Message

LATENCY_CAPACITY = 1_000_000
_FAILURES = (redis.RedisError, OSError)


class LatencyChecker:
    """Warns about entries whose end-to-end latency exceeds a limit."""

    def __init__(
        self,
        max_latency: float,
        capacity: int = LATENCY_CAPACITY,
        clock: Callable[[], int] = time.time_ns,
    ) -> None:
        self.max_latency = max_latency
        self._clock = clock
        self._queue: queue.Queue[tuple[str, int]] = queue.Queue(maxsize=capacity)
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def submit(self, message_id: str, timestamp: int) -> bool:
        """Queue a check; return False when the queue is full."""
        try:
            self._queue.put_nowait((message_id, timestamp))
            return True
        except queue.Full:
            return False

    def check(self, message_id: str, timestamp: int) -> float | None:
        """Return the latency in seconds since ``timestamp`` (ns), or None if it is unset."""
        if timestamp <= 0:
            return None
        latency = (self._clock() - timestamp) / 1e9
        if latency > self.max_latency:
            log_warn(
                "High total latency detected since event trigger until writer processing "
                "for message %s: %.6fs",
                message_id, latency,
            )
        return latency

    def _run(self) -> None:
        while not self._stop.is_set() or not self._queue.empty():
            try:
                self.check(*self._queue.get(timeout=0.1))
            except queue.Empty:
                continue

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="latency-checker", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Process what is queued, then stop the background thread."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join()


class Writer:
    """Batches buffered entries into remote XADD pipelines and acknowledges them locally."""

    def __init__(
        self,
        remote: Any,
        local: Any,
        buffer: queue.Queue,
        closed: threading.Event,
        worker_id: int,
        config: Config,
        metrics: Metrics,
        latency_checker: LatencyChecker,
        clock: Callable[[], float] = time.time,
        idle_wait: float = 0.01,
    ) -> None:
        self.remote = remote
        self.local = local
        self.buffer = buffer
        self.closed = closed
        self.worker_id = worker_id
        self.config = config
        self.metrics = metrics
        self.latency_checker = latency_checker
        self._clock = clock
        self.idle_wait = idle_wait

    def flush(self, pending: list[Message]) -> tuple[int, int]:
        """Write ``pending`` in one pipeline; return the processed and error counts."""
        if not pending:
            return 0, 0
        pipe = self.remote.pipeline(transaction=False)
        for message in pending:
            pipe.xadd(message.stream, message.values)
        try:
            results = pipe.execute()
        except _FAILURES as exc:
            log_error("Pipeline execution failed for worker %d: %s", self.worker_id, exc)
            self.metrics.record_error()
            return 0, 1

        processed = errors = 0
        for message, result in zip(pending, results):
            if isinstance(result, Exception):
                log_error("Failed to add message to stream: %s", result)
                errors += 1
                continue
            latency = self._clock() - message.read_time
            if latency > self.config.processing.writer_max_latency:
                log_warn(
                    "High writer latency after reader processing detected for message %s: %.6fs",
                    message.id, latency,
                )
            if not self.latency_checker.submit(message.id, message.event_timestamp):
                log_warn("Latency channel full, message %s discarded", message.id)
            try:
                self.local.xack(message.stream, self.config.redis.group, message.id)
            except _FAILURES as exc:
                log_error("Failed to acknowledge message %s: %s", message.id, exc)
                errors += 1
            processed += 1

        self.metrics.record_batch(processed, errors)
        return processed, errors

    def run(self) -> None:
        """Consume the buffer until it is closed and drained."""
        batch_size = self.config.processing.writer_batch_size
        timeout = self.config.processing.writer_pipeline_timeout
        pending: list[Message] = []
        last_flush = time.monotonic()
        while True:
            try:
                message = self.buffer.get_nowait()
            except queue.Empty:
                if pending:
                    self.flush(pending)
                    pending = []
                    last_flush = time.monotonic()
                if self.closed.is_set() and self.buffer.empty():
                    return
                try:
                    message = self.buffer.get(timeout=self.idle_wait)
                except queue.Empty:
                    continue
            pending.append(message)
            if len(pending) >= batch_size or time.monotonic() - last_flush > timeout:
                self.flush(pending)
                pending = []
                last_flush = time.monotonic()