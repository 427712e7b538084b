"""Periodic health checks of the local and remote Redis connections."""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Any, Callable

import redis
from redis.backoff import NoBackoff
from redis.retry import Retry

from .config import Config, RedisEndpoint
from .logger import log_error, log_info

DEFAULT_REDIS_PORT = 6379
_FAILURES = (redis.RedisError, OSError)


def _split_address(address: str) -> tuple[str, int]:
    host, sep, port = address.rpartition(":")
    if not sep:
        return address, DEFAULT_REDIS_PORT
    return host.strip("[]") or "localhost", int(port)


def create_client(endpoint: RedisEndpoint) -> redis.Redis:
    """Build a Redis client for ``endpoint``; no connection is made until first use."""
    host, port = _split_address(endpoint.address)
    return redis.Redis(
        host=host,
        port=port,
        db=endpoint.db,
        password=endpoint.password or None,
        max_connections=endpoint.pool_size,
        retry=Retry(NoBackoff(), endpoint.max_retries),
        retry_on_error=[redis.ConnectionError, redis.TimeoutError],
        decode_responses=True,
    )


def _spawn_thread(task: Callable[[], Any]) -> None:
    threading.Thread(target=task, name="redis-recovery", daemon=True).start()


def _close(client: Any) -> None:
    try:
        client.close()
    except _FAILURES:
        pass


class HealthMonitor:
    """Pings both Redis instances on an interval and reconnects when they fail."""

    def __init__(
        self,
        config: Config,
        client_factory: Callable[[RedisEndpoint], Any] = create_client,
        spawn: Callable[[Callable[[], Any]], None] | None = None,
    ) -> None:
        self.config = config
        self.check_interval = config.health.check_interval
        self.recovery_timeout = config.health.recovery_timeout
        self.max_retries = config.health.max_retries
        self._factory = client_factory
        self._spawn = spawn or _spawn_thread
        self._lock = threading.RLock()
        self._clients_lock = threading.Lock()
        self.local_client = client_factory(config.redis.local)
        self.remote_client = client_factory(config.redis.remote)
        self._healthy = True
        self._last_heartbeat: datetime | None = None
        self._last_error: str | None = None
        self._recovery_attempts = 0
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        """Begin checking in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._monitor, name="health-monitor", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop the background checks."""
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()

    def _monitor(self) -> None:
        while not self._stop.wait(self.check_interval):
            self.check_health()

    def _connections_ok(self) -> bool:
        with self._clients_lock:
            local, remote = self.local_client, self.remote_client
        try:
            local.ping()
        except _FAILURES as exc:
            log_error("Local Redis connection failed (%s): %s", self.config.redis.local.address, exc)
            return False
        try:
            remote.ping()
        except _FAILURES as exc:
            log_error("Remote Redis connection failed (%s): %s", self.config.redis.remote.address, exc)
            return False
        return True

    def check_health(self) -> bool:
        """Run one check, update the status and schedule recovery if needed."""
        with self._lock:
            if not self._connections_ok():
                self._last_error = "Redis connections failed"
                self._healthy = False
                self._recovery_attempts += 1
                log_error("Unhealthy state detected: %s", self._last_error)
                if self._recovery_attempts <= self.max_retries:
                    self._spawn(self.attempt_recovery)
                else:
                    log_error("Max recovery attempts reached. Manual intervention required.")
                return False
            self._last_heartbeat = datetime.now(timezone.utc)
            self._healthy = True
            self._recovery_attempts = 0
            self._last_error = None
            return True

    def attempt_recovery(self) -> bool:
        """Open fresh clients and, if both answer, replace the current ones."""
        log_info("Starting recovery attempt %d", self._recovery_attempts)
        new_local = self._factory(self.config.redis.local)
        new_remote = self._factory(self.config.redis.remote)
        for client, name in ((new_local, "local"), (new_remote, "remote")):
            try:
                client.ping()
            except _FAILURES as exc:
                log_error("Failed to establish new %s Redis connection: %s", name, exc)
                _close(new_local)
                _close(new_remote)
                return False
        with self._clients_lock:
            old_clients = (self.local_client, self.remote_client)
            self.local_client, self.remote_client = new_local, new_remote
        for client in old_clients:
            _close(client)
        log_info("Successfully reconnected to Redis instances")
        return True

    def is_healthy(self) -> bool:
        with self._lock:
            return self._healthy

    def status(self) -> dict[str, Any]:
        """Return the current health state in a JSON-friendly form."""
        with self._lock:
            heartbeat = self._last_heartbeat
            return {
                "is_healthy": self._healthy,
                "last_heartbeat": heartbeat.isoformat() if heartbeat is not None else None,
                "last_error": self._last_error,
                "recovery_attempts": self._recovery_attempts,
            }