"""HTTP endpoints exposing health and metrics."""

from __future__ import annotations

from typing import Any

from flask import Flask, jsonify

from .logger import log_error, log_info


def create_app(monitor: Any, metrics: Any) -> Flask:
    """Build the application serving ``/health`` and ``/metrics``."""
    app = Flask("streamsync")

    @app.get("/health")
    def health() -> Any:
        status = monitor.status()
        if monitor.is_healthy():
            return jsonify(status="healthy", data=status), 200
        return jsonify(status="unhealthy", data=status), 503

    @app.get("/metrics")
    def metrics_view() -> Any:
        return jsonify(metrics.snapshot()), 200

    return app


def run_server(app: Any, port: int) -> None:
    """Serve ``app`` on all interfaces at ``port``; failures to bind are logged."""
    log_info("Starting health check server on :%d", port)
    try:
        app.run(host="0.0.0.0", port=port)
    except OSError as exc:
        log_error("Failed to start health check server: %s", exc)