import pytest
import redis

from streamsync.app import create_group, main


class FakeClient:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def xgroup_create(self, name, groupname, id="$", mkstream=False):
        self.calls.append((name, groupname, id, mkstream))
        if self.error is not None:
            raise self.error
        return True


def test_create_group_creates_stream_from_start():
    client = FakeClient()
    create_group(client, "freeswitch:telephony:events", "sync_group")
    assert client.calls == [("freeswitch:telephony:events", "sync_group", "0", True)]


def test_create_group_accepts_existing_group():
    client = FakeClient(redis.ResponseError("BUSYGROUP Consumer Group name already exists"))
    create_group(client, "s", "g")
    assert len(client.calls) == 1


def test_create_group_raises_other_errors():
    client = FakeClient(redis.ResponseError("WRONGTYPE Operation against a key"))
    with pytest.raises(redis.ResponseError, match="WRONGTYPE"):
        create_group(client, "s", "g")


def test_create_group_raises_connection_errors():
    client = FakeClient(redis.ConnectionError("refused"))
    with pytest.raises(redis.ConnectionError):
        create_group(client, "s", "g")


def test_main_help_exits_cleanly(capsys):
    with pytest.raises(SystemExit) as info:
        main(["--help"])
    assert info.value.code == 0
    assert "streamsync" in capsys.readouterr().out


def test_main_rejects_invalid_config(monkeypatch):
    monkeypatch.setenv("BUFFER_SIZE", "0")
    assert main([]) == 1


def test_main_fails_when_local_redis_unreachable(monkeypatch):
    monkeypatch.setenv("REDIS_LOCAL_ADDR", "127.0.0.1:1")
    monkeypatch.setenv("REDIS_LOCAL_MAX_RETRIES", "0")
    assert main([]) == 1