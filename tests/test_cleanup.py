import time

import pytest
import redis

from streamsync.cleanup import ConsumerCleanup


class FakeStreams:
    def __init__(self, pending=None):
        self.pending = {name: list(ids) for name, ids in (pending or {}).items()}
        self.acked = []
        self.claimed = []
        self.deleted = []
        self.pending_counts = []
        self.fail_pending = False
        self.fail_ack = False
        self.fail_delete = set()

    def xpending_range(self, name, groupname, min, max, count, consumername=None, idle=None):
        self.pending_counts.append(count)
        if self.fail_pending:
            raise redis.ResponseError("NOGROUP")
        return [
            {"message_id": mid, "consumer": "other", "time_since_delivered": 0, "times_delivered": 1}
            for mid in self.pending.get(name, [])[:count]
        ]

    def xclaim(self, name, groupname, consumername, min_idle_time, message_ids):
        self.claimed.append((name, groupname, consumername, min_idle_time, tuple(message_ids)))
        return [(mid, {"event": "x"}) for mid in message_ids if mid in self.pending.get(name, [])]

    def xack(self, name, groupname, *ids):
        if self.fail_ack:
            raise redis.ConnectionError("down")
        for mid in ids:
            self.pending[name].remove(mid)
            self.acked.append((name, groupname, mid))
        return len(ids)

    def xgroup_delconsumer(self, name, groupname, consumername):
        if consumername in self.fail_delete:
            raise redis.ResponseError("no such consumer")
        self.deleted.append((name, groupname, consumername))
        return 0


STREAMS = ["events", "jobs"]


def test_process_pending_acks_everything_in_batches():
    ids = [f"{i}-0" for i in range(150)]
    fake = FakeStreams({"events": ids})
    cleanup = ConsumerCleanup(fake, "grp", "worker", STREAMS, 2)
    cleanup.process_pending("events")
    assert fake.pending["events"] == []
    assert sorted(mid for _, _, mid in fake.acked) == sorted(ids)
    assert set(fake.pending_counts) == {100}
    assert all(claim[2] == "worker" and claim[3] == 0 for claim in fake.claimed)


def test_stop_removes_each_worker_consumer():
    fake = FakeStreams({"events": ["1-0"], "jobs": ["2-0"]})
    cleanup = ConsumerCleanup(fake, "grp", "worker", STREAMS, 2)
    cleanup.stop()
    assert fake.deleted == [
        ("events", "grp", "worker_0"),
        ("events", "grp", "worker_1"),
        ("jobs", "grp", "worker_0"),
        ("jobs", "grp", "worker_1"),
    ]
    assert fake.pending == {"events": [], "jobs": []}


def test_stop_continues_after_delete_failure():
    fake = FakeStreams()
    fake.fail_delete = {"worker_0"}
    ConsumerCleanup(fake, "grp", "worker", STREAMS, 2).stop()
    assert [name for _, _, name in fake.deleted] == ["worker_1", "worker_1"]


def test_pending_error_stops_processing():
    fake = FakeStreams({"events": ["1-0"]})
    fake.fail_pending = True
    ConsumerCleanup(fake, "grp", "worker", STREAMS, 1).process_pending("events")
    assert fake.claimed == []
    assert fake.pending["events"] == ["1-0"]


def test_ack_failures_are_bounded_by_timeout():
    fake = FakeStreams({"events": ["1-0"]})
    fake.fail_ack = True
    cleanup = ConsumerCleanup(fake, "grp", "worker", STREAMS, 1, timeout=0.05)
    started = time.monotonic()
    cleanup.process_pending("events")
    assert time.monotonic() - started < 2.0
    assert fake.acked == []
    assert len(fake.claimed) >= 1


def test_context_manager_cleans_up_on_error():
    fake = FakeStreams()
    cleanup = ConsumerCleanup(fake, "grp", "worker", STREAMS, 3)
    with pytest.raises(RuntimeError):
        with cleanup:
            raise RuntimeError("boom")
    assert len(fake.deleted) == 6


def test_context_manager_is_quiet_without_error():
    fake = FakeStreams()
    with ConsumerCleanup(fake, "grp", "worker", STREAMS, 3):
        pass
    assert fake.deleted == []