# streamsync

streamsync is a daemon that copies entries from Redis streams on a local
instance to the same streams on a remote instance.

Reader threads read new entries through a consumer group (with `NOACK`)
and put them in a bounded in-memory buffer. Writer threads take entries
from the buffer, send them to the remote instance as `XADD` commands in
pipelined batches, and acknowledge each written entry on the local
instance.

While it runs, it also:

- pings both Redis instances at a fixed interval from a health monitor
  and, after a failed check, tries to open fresh connections for the
  monitor;
- logs the counters every five seconds, resetting the processed count
  after each report;
- logs a warning when an entry took longer than the configured limits
  to be read (measured from the event's `Event-Date-Timestamp`), to be
  written after it was read, or to go from the event to the write;
- serves `/health` and `/metrics` over HTTP;
- on SIGINT or SIGTERM, stops the readers, lets the writers drain the
  buffer, claims and acknowledges pending entries, and deletes its
  consumers from the group.

## Installation

```
pip install .
```

For the test suite:

```
pip install ".[test]"
pytest
```

## Running

```
streamsync
```

The command takes no options besides `--help`. It returns exit status 1
when the configuration is invalid, when either Redis instance does not
answer a ping at start-up, or when the consumer group cannot be created.

All settings come from environment variables. A variable that is unset
or empty uses its default; a value that cannot be parsed also falls back
to the default.

### Redis

| Variable | Default |
| --- | --- |
| `REDIS_LOCAL_ADDR` | `localhost:6379` |
| `REDIS_LOCAL_PASSWORD` | empty |
| `REDIS_LOCAL_DB` | `2` |
| `REDIS_LOCAL_POOL_SIZE` | `100` |
| `REDIS_LOCAL_MIN_IDLE_CONNS` | `10` |
| `REDIS_LOCAL_MAX_RETRIES` | `3` |
| `REDIS_REMOTE_ADDR` | `redis-remote:6379` |
| `REDIS_REMOTE_PASSWORD` | empty |
| `REDIS_REMOTE_DB` | `2` |
| `REDIS_REMOTE_POOL_SIZE` | `100` |
| `REDIS_REMOTE_MIN_IDLE_CONNS` | `10` |
| `REDIS_REMOTE_MAX_RETRIES` | `3` |
| `REDIS_GROUP` | `sync_group` |
| `REDIS_CONSUMER` | `sync_worker` (`_<hostname>` is appended) |
| `STREAM_EVENTS` | `freeswitch:telephony:events` |
| `STREAM_JOBS` | `freeswitch:telephony:background-jobs` |

Each reader thread uses the consumer name followed by `_<index>`.
The pool size becomes the client's connection limit and the retry count
its retry count on connection errors and timeouts. `*_MIN_IDLE_CONNS` is
read into the configuration but the client does not use it.

### Processing

Durations are written as a sequence of numbers with units, such as
`50ms`, `1.5s` or `1m30s`; the units are `ns`, `us` (or `µs`), `ms`,
`s`, `m` and `h`.

| Variable | Default |
| --- | --- |
| `READER_BATCH_SIZE` | `5000` |
| `READER_MAX_LATENCY` | `50ms` |
| `READER_BLOCK_TIME` | `10ms` |
| `READER_WORKERS` | `3` |
| `WRITER_BATCH_SIZE` | `10` |
| `WRITER_MAX_LATENCY` | `100ms` |
| `WRITER_PIPELINE_TIMEOUT` | `25ms` |
| `WRITER_WORKERS` | `10` |
| `BUFFER_SIZE` | `100000` |
| `TOTAL_MAX_LATENCY` | `1s` |

A writer sends its batch when it holds `WRITER_BATCH_SIZE` entries, when
more than `WRITER_PIPELINE_TIMEOUT` has passed since its last send, or
as soon as the buffer is momentarily empty.

### Health and logging

| Variable | Default |
| --- | --- |
| `HEALTH_CHECK_INTERVAL` | `5s` |
| `HEALTH_RECOVERY_TIMEOUT` | `30s` |
| `HEALTH_MAX_RETRIES` | `5` |
| `HEALTH_PORT` | `9876` |
| `LOG_LEVEL` | `info` (`error`, `warn`, `info` or `debug`) |
| `LOG_BUFFER_SIZE` | `1000` |

After `HEALTH_MAX_RETRIES` consecutive failed checks the monitor stops
trying to reconnect and logs that manual intervention is required.
`HEALTH_RECOVERY_TIMEOUT` is read into the configuration but nothing
uses it.

Log entries are written to standard error as `[LEVEL] text` behind a
timestamp, from a background thread. Entries that arrive while the log
buffer is full are dropped.

A configuration is invalid, and the program logs the reason and exits
with status 1, when the buffer size, a worker count, the reader or
writer latency limit, or the writer pipeline timeout is zero or less.

## HTTP endpoints

- `GET /health` returns `200` with `{"status": "healthy", "data": {...}}`
  while the last check succeeded, and `503` with `"status": "unhealthy"`
  after a failed one. `data` holds `is_healthy`, `last_heartbeat` (ISO
  8601, or `null` before the first successful check), `last_error` and
  `recovery_attempts`.
- `GET /metrics` returns `messages_processed` (since the last five-second
  report), `errors`, `queue_size` (refreshed about once a second by the
  readers) and `last_sync` (RFC 3339).

## Using it as a library

The parts can be assembled separately:

```python
from streamsync.config import load_config
from streamsync.health import HealthMonitor
from streamsync.metrics import Metrics
from streamsync.server import create_app, run_server

config = load_config({"REDIS_REMOTE_ADDR": "remote.example.com:6379"}, "host1")
monitor = HealthMonitor(config)
monitor.start()
app = create_app(monitor, Metrics())
run_server(app, config.health.port)
```

- `streamsync.config` — `load_config`, `validate_config` (raises
  `ConfigError`), `parse_duration` (returns seconds) and the frozen
  dataclasses `Config`, `RedisSettings`, `RedisEndpoint`,
  `ProcessingSettings` and `HealthSettings`.
- `streamsync.reader` — `Reader`, `Message` and
  `extract_event_timestamp`, which returns an event's
  `Event-Date-Timestamp` (microseconds) in nanoseconds, or `0`.
- `streamsync.writer` — `Writer` and `LatencyChecker`.
- `streamsync.cleanup` — `ConsumerCleanup`, which can also be used as a
  context manager that runs the cleanup when its body raises.
- `streamsync.app` — `create_group` and `main`.
- `streamsync.logger` — `AsyncLogger`, `LogLevel`, `init_logger` and the
  `log_error`, `log_warn`, `log_info` and `log_debug` helpers.

## Limitations

- The buffer lives in memory only. Entries that arrive while it is full
  are discarded with a warning, and anything still buffered when the
  process is killed is lost.
- Reconnection after a failed health check replaces only the health
  monitor's own clients; the readers and writers keep their clients.
- There is no TLS or user-name setting for the Redis connections.