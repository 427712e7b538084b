"""Release pending stream entries and remove this service's consumers."""

from __future__ import annotations

import time
from typing import Any, Iterable

import redis

from .logger import log_error, log_info

PENDING_BATCH = 100
_FAILURES = (redis.RedisError, OSError)


def _text(value: Any) -> str:
    return value.decode() if isinstance(value, bytes) else str(value)


class ConsumerCleanup:
    """Claims and acknowledges pending entries, then deletes the worker consumers.

    Used as a context manager, it runs the cleanup when the body raises and
    lets the exception continue.
    """

    def __init__(
        self,
        client: Any,
        group: str,
        consumer: str,
        streams: Iterable[str],
        threads: int,
        timeout: float = 5.0,
    ) -> None:
        self.client = client
        self.group = group
        self.consumer = consumer
        self.streams = tuple(streams)
        self.threads = threads
        self.timeout = timeout

    def __enter__(self) -> "ConsumerCleanup":
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        if exc is not None:
            log_error("Recovered from failure: %s", exc)
            self.stop()

    def process_pending(self, stream: str) -> None:
        """Claim and acknowledge every pending entry of ``stream``."""
        self._process_pending(stream, time.monotonic() + self.timeout)

    def _process_pending(self, stream: str, deadline: float) -> None:
        while time.monotonic() < deadline:
            try:
                pending = self.client.xpending_range(
                    stream, self.group, min="-", max="+", count=PENDING_BATCH
                )
            except _FAILURES as exc:
                log_error("Error getting pending messages: %s", exc)
                return
            if not pending:
                return
            log_info("Processing batch of %d pending messages in stream %s", len(pending), stream)
            for entry in pending:
                message_id = entry["message_id"]
                try:
                    claimed = self.client.xclaim(
                        stream, self.group, self.consumer, min_idle_time=0, message_ids=[message_id]
                    )
                except _FAILURES as exc:
                    log_error("Error claiming message %s: %s", _text(message_id), exc)
                    continue
                for claimed_id, _fields in claimed:
                    try:
                        self.client.xack(stream, self.group, claimed_id)
                    except _FAILURES as exc:
                        log_error("Error acknowledging message %s: %s", _text(claimed_id), exc)
                    else:
                        log_info("Successfully acknowledged message %s", _text(claimed_id))

    def stop(self) -> None:
        """Drain pending entries and delete each worker consumer from every stream."""
        log_info("Stopping cleanup mechanism")
        deadline = time.monotonic() + self.timeout
        for stream in self.streams:
            self._process_pending(stream, deadline)
            for index in range(self.threads):
                name = f"{self.consumer}_{index}"
                try:
                    self.client.xgroup_delconsumer(stream, self.group, name)
                except _FAILURES as exc:
                    log_error(
                        "Error removing consumer %s from group %s in stream %s: %s",
                        name, self.group, stream, exc,
                    )
                    continue
                log_info(
                    "Successfully removed consumer %s from group %s in stream %s",
                    name, self.group, stream,
                )
        log_info("Cleanup completed")