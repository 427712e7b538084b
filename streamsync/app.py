"""Service entry point: wires readers, writers, health checks and shutdown."""

from __future__ import annotations

import argparse
import queue
import signal
import threading
import time
from typing import Any, Callable, Sequence

import redis

from .cleanup import ConsumerCleanup
from .config import Config, ConfigError, load_config
from .health import HealthMonitor, create_client
from .logger import init_logger, log_error, log_info
from .metrics import Metrics, run_reporter
from .reader import Reader
from .server import create_app, run_server
from .writer import LatencyChecker, Writer

READER_STOP_GRACE = 0.1
_FAILURES = (redis.RedisError, OSError)


def create_group(client: Any, stream: str, group: str) -> None:
    """Create ``group`` on ``stream`` from the start, creating the stream if needed."""
    try:
        client.xgroup_create(stream, group, id="0", mkstream=True)
    except _FAILURES as exc:
        if not (isinstance(exc, redis.ResponseError) and "BUSYGROUP" in str(exc)):
            log_error("Failed to create group %s in stream %s: %s", group, stream, exc)
            raise
    log_info("Group %s created/verified in stream %s", group, stream)


def _start(target: Callable[[], Any], name: str, daemon: bool = False) -> threading.Thread:
    thread = threading.Thread(target=target, name=name, daemon=daemon)
    thread.start()
    return thread


def _serve(config: Config, monitor: HealthMonitor, local: Any, remote: Any) -> int:
    processing = config.processing
    metrics = Metrics()
    buffer: queue.Queue = queue.Queue(maxsize=processing.buffer_size)
    stop_readers, closed, stop_reporter, shutdown = (threading.Event() for _ in range(4))

    for signum in (signal.SIGINT, signal.SIGTERM):
        signal.signal(signum, lambda *_: shutdown.set())

    checker = LatencyChecker(processing.total_max_latency)
    cleanup = ConsumerCleanup(
        local, config.redis.group, config.redis.consumer, config.streams, processing.reader_workers
    )
    with cleanup:
        workers = [
            _start(
                Reader(local, buffer, index, config, f"{config.redis.consumer}_{index}",
                       metrics, stop_readers).run,
                f"reader-{index}",
            )
            for index in range(processing.reader_workers)
        ] + [
            _start(Writer(remote, local, buffer, closed, index, config, metrics, checker).run,
                   f"writer-{index}")
            for index in range(processing.writer_workers)
        ]
        _start(lambda: run_reporter(metrics, stop_reporter), "metrics-reporter", daemon=True)
        app = create_app(monitor, metrics)
        _start(lambda: run_server(app, config.health.port), "health-server", daemon=True)
        checker.start()

        while not shutdown.wait(0.5):
            pass
        log_info("Starting graceful shutdown...")
        monitor.stop()
        stop_readers.set()
        time.sleep(READER_STOP_GRACE)
        closed.set()
        cleanup.stop()
        for worker in workers:
            worker.join()

    stop_reporter.set()
    checker.stop()
    log_info("Shutdown complete")
    return 0


def _run() -> int:
    try:
        config = load_config()
    except ConfigError as exc:
        log_error("Invalid configuration: %s", exc)
        return 1

    monitor = HealthMonitor(config)
    monitor.start()
    local = create_client(config.redis.local)
    remote = create_client(config.redis.remote)
    try:
        for client, name in ((local, "local"), (remote, "remote")):
            try:
                client.ping()
            except _FAILURES as exc:
                log_error("Error connecting to %s Redis: %s", name, exc)
                return 1
        for stream in config.streams:
            try:
                create_group(local, stream, config.redis.group)
            except _FAILURES as exc:
                log_error("Error creating group in stream %s: %s", stream, exc)
                return 1
        return _serve(config, monitor, local, remote)
    finally:
        monitor.stop()
        for client in (local, remote):
            try:
                client.close()
            except _FAILURES:
                pass


def main(argv: Sequence[str] | None = None) -> int:
    """Run the synchroniser until SIGINT or SIGTERM; return the exit status."""
    argparse.ArgumentParser(
        prog="streamsync",
        description="Copy entries from local Redis streams to a remote Redis instance. "
        "Configured through environment variables.",
    ).parse_args(argv)
    logger = init_logger()
    try:
        return _run()
    finally:
        logger.shutdown()