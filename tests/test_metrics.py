import re
import threading
import time
from datetime import datetime

from streamsync.metrics import Metrics, run_reporter

RFC3339 = re.compile(r"\d{4}-\d\d-\d\dT\d\d:\d\d:\d\d(Z|[+-]\d\d:\d\d)")


def _parse(stamp):
    return datetime.fromisoformat(stamp.replace("Z", "+00:00"))


def test_record_batch_accumulates():
    metrics = Metrics()
    metrics.record_batch(3, 1)
    metrics.record_batch(2, 0)
    snapshot = metrics.snapshot()
    assert snapshot["messages_processed"] == 3 + 2
    assert snapshot["errors"] == 1


def test_record_batch_updates_sync_time():
    metrics = Metrics()
    before = metrics.last_sync_time
    time.sleep(0.01)
    metrics.record_batch(1, 0)
    assert metrics.last_sync_time > before


def test_record_error_leaves_processed_alone():
    metrics = Metrics()
    metrics.record_batch(4, 0)
    metrics.record_error()
    metrics.record_error()
    snapshot = metrics.snapshot()
    assert snapshot["messages_processed"] == 4
    assert snapshot["errors"] == 2


def test_queue_size_is_reported():
    metrics = Metrics()
    metrics.set_queue_size(17)
    assert metrics.snapshot()["queue_size"] == 17


def test_last_sync_is_rfc3339():
    metrics = Metrics()
    stamp = metrics.snapshot()["last_sync"]
    assert RFC3339.fullmatch(stamp)
    assert _parse(stamp).timestamp() == int(metrics.last_sync_time.timestamp())


def test_take_report_resets_only_processed():
    metrics = Metrics()
    metrics.record_batch(6, 2)
    metrics.set_queue_size(9)
    report = metrics.take_report()
    assert report["messages_processed"] == 6
    assert report["errors"] == 2
    after = metrics.snapshot()
    assert after["messages_processed"] == 0
    assert after["errors"] == 2
    assert after["queue_size"] == 9


def test_run_reporter_returns_when_stopped():
    metrics = Metrics()
    metrics.record_batch(5, 0)
    stop = threading.Event()
    stop.set()
    run_reporter(metrics, stop, 0.01)
    assert metrics.snapshot()["messages_processed"] == 5


def test_run_reporter_resets_periodically():
    metrics = Metrics()
    metrics.record_batch(5, 3)
    stop = threading.Event()
    thread = threading.Thread(target=run_reporter, args=(metrics, stop, 0.01))
    thread.start()
    deadline = time.monotonic() + 2
    while metrics.snapshot()["messages_processed"] and time.monotonic() < deadline:
        time.sleep(0.005)
    stop.set()
    thread.join(2)
    assert not thread.is_alive()
    snapshot = metrics.snapshot()
    assert snapshot["messages_processed"] == 0
    assert snapshot["errors"] == 3