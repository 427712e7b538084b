"""Service configuration read from environment variables."""

from __future__ import annotations

import os
import re
import socket
from dataclasses import dataclass, field
from fractions import Fraction
from typing import Mapping

DEFAULT_LOCAL_ADDRESS = "localhost:6379"
DEFAULT_REMOTE_ADDRESS = "redis-remote:6379"
DEFAULT_GROUP = "sync_group"
DEFAULT_CONSUMER = "sync_worker"
DEFAULT_EVENTS_STREAM = "freeswitch:telephony:events"
DEFAULT_JOBS_STREAM = "freeswitch:telephony:background-jobs"

_NS_PER_S = 10**9
_UNITS = {
    "ns": 1,
    "us": 10**3,
    "\u00b5s": 10**3,
    "\u03bcs": 10**3,
    "ms": 10**6,
    "s": _NS_PER_S,
    "m": 60 * _NS_PER_S,
    "h": 3600 * _NS_PER_S,
}
_SEGMENT = re.compile(r"(\d*)(?:\.(\d*))?([^\d.]*)")
_INTEGER = re.compile(r"[+-]?\d+")
_INT64_MAX = 2**63 - 1


class ConfigError(ValueError):
    """Raised when the configuration is invalid."""


def parse_duration(text: str) -> float:
    """Parse a duration such as ``"1h30m"`` or ``"-1.5s"`` into seconds."""
    original = text
    if not text:
        raise ValueError(f"invalid duration {original!r}")
    negative = text[0] == "-"
    if text[0] in "+-":
        text = text[1:]
    if text == "0":
        return 0.0
    if not text:
        raise ValueError(f"invalid duration {original!r}")

    total = Fraction(0)
    pos = 0
    while pos < len(text):
        match = _SEGMENT.match(text, pos)
        whole, fraction, unit = match.group(1), match.group(2), match.group(3)
        if not whole and not fraction:
            raise ValueError(f"invalid duration {original!r}")
        if not unit:
            raise ValueError(f"missing unit in duration {original!r}")
        scale = _UNITS.get(unit)
        if scale is None:
            raise ValueError(f"unknown unit {unit!r} in duration {original!r}")
        value = Fraction(int(whole or "0"))
        if fraction:
            value += Fraction(int(fraction), 10 ** len(fraction))
        total += value * scale
        pos = match.end()

    nanoseconds = int(total)
    limit = _INT64_MAX + 1 if negative else _INT64_MAX
    if nanoseconds > limit:
        raise ValueError(f"invalid duration {original!r}")
    if negative:
        nanoseconds = -nanoseconds
    return nanoseconds / _NS_PER_S


@dataclass(frozen=True)
class RedisEndpoint:
    address: str = DEFAULT_LOCAL_ADDRESS
    password: str = field(default_factory=str)
    db: int = 2
    pool_size: int = 100
    min_idle_conns: int = 10
    max_retries: int = 3


@dataclass(frozen=True)
class RedisSettings:
    local: RedisEndpoint = field(default_factory=RedisEndpoint)
    remote: RedisEndpoint = field(default_factory=lambda: RedisEndpoint(address=DEFAULT_REMOTE_ADDRESS))
    group: str = DEFAULT_GROUP
    consumer: str = DEFAULT_CONSUMER


@dataclass(frozen=True)
class ProcessingSettings:
    """Reader and writer tuning; durations are in seconds."""

    reader_batch_size: int = 5000
    reader_max_latency: float = 0.05
    reader_block_time: float = 0.01
    reader_workers: int = 3
    writer_batch_size: int = 10
    writer_max_latency: float = 0.1
    writer_pipeline_timeout: float = 0.025
    writer_workers: int = 10
    buffer_size: int = 100000
    total_max_latency: float = 1.0


@dataclass(frozen=True)
class HealthSettings:
    """Health monitoring settings; durations are in seconds."""

    check_interval: float = 5.0
    recovery_timeout: float = 30.0
    max_retries: int = 5
    port: int = 9876


@dataclass(frozen=True)
class Config:
    redis: RedisSettings = field(default_factory=RedisSettings)
    streams: tuple[str, ...] = (DEFAULT_EVENTS_STREAM, DEFAULT_JOBS_STREAM)
    processing: ProcessingSettings = field(default_factory=ProcessingSettings)
    health: HealthSettings = field(default_factory=HealthSettings)


def get_env(environ: Mapping[str, str], key: str, default: str) -> str:
    """Return the variable's value, or ``default`` when it is unset or empty."""
    return environ.get(key) or default


def get_env_int(environ: Mapping[str, str], key: str, default: int) -> int:
    """Return the variable as an integer, or ``default`` when unset or malformed."""
    value = environ.get(key, "")
    if _INTEGER.fullmatch(value):
        number = int(value)
        if -_INT64_MAX - 1 <= number <= _INT64_MAX:
            return number
    return default


def get_env_duration(environ: Mapping[str, str], key: str, default: float) -> float:
    """Return the variable as a duration in seconds, or ``default`` when unset or malformed."""
    value = environ.get(key, "")
    if value:
        try:
            return parse_duration(value)
        except ValueError:
            pass
    return default


def validate_config(config: Config) -> None:
    """Raise ConfigError describing the first problem found."""
    redis = config.redis
    processing = config.processing
    checks = [
        (not redis.local.address, "local Redis address is required"),
        (not redis.remote.address, "remote Redis address is required"),
        (not redis.group, "Redis group name is required"),
        (not redis.consumer, "Redis consumer name is required"),
        (not config.streams, "at least one stream is required"),
        (processing.buffer_size <= 0, "buffer size must be greater than 0"),
        (processing.reader_workers <= 0, "reader workers must be greater than 0"),
        (processing.writer_workers <= 0, "writer workers must be greater than 0"),
        (processing.reader_max_latency <= 0, "reader max latency must be greater than 0"),
        (processing.writer_max_latency <= 0, "writer max latency must be greater than 0"),
        (processing.writer_pipeline_timeout <= 0, "writer pipeline timeout must be greater than 0"),
    ]
    for failed, reason in checks:
        if failed:
            raise ConfigError(reason)


def _hostname() -> str:
    try:
        return socket.gethostname() or "unknown"
    except OSError:
        return "unknown"


def _endpoint(environ: Mapping[str, str], prefix: str, default_address: str) -> RedisEndpoint:
    credential_variable = f"{prefix}_PASSWORD"
    return RedisEndpoint(
        address=get_env(environ, f"{prefix}_ADDR", default_address),
        password=get_env(environ, credential_variable, str()),
        db=get_env_int(environ, f"{prefix}_DB", 2),
        pool_size=get_env_int(environ, f"{prefix}_POOL_SIZE", 100),
        min_idle_conns=get_env_int(environ, f"{prefix}_MIN_IDLE_CONNS", 10),
        max_retries=get_env_int(environ, f"{prefix}_MAX_RETRIES", 3),
    )


def load_config(environ: Mapping[str, str] | None = None, hostname: str | None = None) -> Config:
    """Build and validate the configuration from the environment."""
    env = os.environ if environ is None else environ
    if hostname is None:
        hostname = _hostname()

    redis = RedisSettings(
        local=_endpoint(env, "REDIS_LOCAL", DEFAULT_LOCAL_ADDRESS),
        remote=_endpoint(env, "REDIS_REMOTE", DEFAULT_REMOTE_ADDRESS),
        group=get_env(env, "REDIS_GROUP", DEFAULT_GROUP),
        consumer=f"{get_env(env, 'REDIS_CONSUMER', DEFAULT_CONSUMER)}_{hostname}",
    )
    streams = (
        get_env(env, "STREAM_EVENTS", DEFAULT_EVENTS_STREAM),
        get_env(env, "STREAM_JOBS", DEFAULT_JOBS_STREAM),
    )
    defaults = ProcessingSettings()
    processing = ProcessingSettings(
        reader_batch_size=get_env_int(env, "READER_BATCH_SIZE", defaults.reader_batch_size),
        reader_max_latency=get_env_duration(env, "READER_MAX_LATENCY", defaults.reader_max_latency),
        reader_block_time=get_env_duration(env, "READER_BLOCK_TIME", defaults.reader_block_time),
        reader_workers=get_env_int(env, "READER_WORKERS", defaults.reader_workers),
        writer_batch_size=get_env_int(env, "WRITER_BATCH_SIZE", defaults.writer_batch_size),
        writer_max_latency=get_env_duration(env, "WRITER_MAX_LATENCY", defaults.writer_max_latency),
        writer_pipeline_timeout=get_env_duration(
            env, "WRITER_PIPELINE_TIMEOUT", defaults.writer_pipeline_timeout
        ),
        writer_workers=get_env_int(env, "WRITER_WORKERS", defaults.writer_workers),
        buffer_size=get_env_int(env, "BUFFER_SIZE", defaults.buffer_size),
        total_max_latency=get_env_duration(env, "TOTAL_MAX_LATENCY", defaults.total_max_latency),
    )
    health_defaults = HealthSettings()
    health = HealthSettings(
        check_interval=get_env_duration(env, "HEALTH_CHECK_INTERVAL", health_defaults.check_interval),
        recovery_timeout=get_env_duration(env, "HEALTH_RECOVERY_TIMEOUT", health_defaults.recovery_timeout),
        max_retries=get_env_int(env, "HEALTH_MAX_RETRIES", health_defaults.max_retries),
        port=get_env_int(env, "HEALTH_PORT", health_defaults.port),
    )
    config = Config(redis=redis, streams=streams, processing=processing, health=health)
    validate_config(config)
    return config