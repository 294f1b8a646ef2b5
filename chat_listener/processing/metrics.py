"""
processing/metrics.py
=====================
Prometheus text-format metrics for the chat listener.

The listener is a single long-running asyncio process, so the metric stores
are plain dicts rendered on demand by a tiny HTTP server running in a daemon
thread. Scrape at http://<host>:METRICS_PORT/metrics.

Counters
    chat_listener_events_total{outcome}          — inbound chat events
        outcome = fanned_out | unclaimed | self | lookup_failed
    chat_listener_records_total{status}          — per-tenant writes (ok/error)
    chat_listener_reconcile_passes_total{result} — noop | reconnect | skipped
    chat_listener_connection_events_total{event} — transport lifecycle events

Gauges
    chat_listener_subscribed_channels            — size of the live channel set

Summaries
    chat_listener_fanout_seconds                 — scoring + all tenant writes
"""

import logging
import os
import threading
import time
from contextlib import contextmanager
from http.server import BaseHTTPRequestHandler, HTTPServer

logger = logging.getLogger(__name__)

METRICS_PORT = int(os.environ.get("METRICS_PORT", "8000"))
_MAX_OBSERVATIONS = 10_000

_lock = threading.Lock()
_counters: dict[str, float] = {}
_gauges: dict[str, float] = {}
_summaries: dict[str, list[float]] = {}


def _key(name: str, labels: dict | None) -> str:
    if not labels:
        return name
    label_str = ",".join(f'{k}="{v}"' for k, v in sorted(labels.items()))
    return f"{name}{{{label_str}}}"


def inc_counter(name: str, value: float = 1.0, labels: dict | None = None) -> None:
    key = _key(name, labels)
    with _lock:
        _counters[key] = _counters.get(key, 0.0) + value


def set_gauge(name: str, value: float, labels: dict | None = None) -> None:
    with _lock:
        _gauges[_key(name, labels)] = value


def observe(name: str, value: float) -> None:
    with _lock:
        values = _summaries.setdefault(name, [])
        values.append(value)
        if len(values) > _MAX_OBSERVATIONS:
            del values[: len(values) - _MAX_OBSERVATIONS]


def get_counter(name: str, labels: dict | None = None) -> float:
    with _lock:
        return _counters.get(_key(name, labels), 0.0)


def reset() -> None:
    """Drop every recorded value (used between test cases)."""
    with _lock:
        _counters.clear()
        _gauges.clear()
        _summaries.clear()


def _quantile(values: list[float], q: float) -> float:
    if not values:
        return 0.0
    ordered = sorted(values)
    return ordered[min(int(len(ordered) * q), len(ordered) - 1)]


def render_metrics() -> str:
    with _lock:
        counters = dict(_counters)
        gauges = dict(_gauges)
        summaries = {k: list(v) for k, v in _summaries.items()}

    lines = []
    for key, value in sorted(counters.items()):
        lines.append(f"# TYPE {key.split('{')[0]} counter")
        lines.append(f"{key} {value:.2f}")
    for key, value in sorted(gauges.items()):
        lines.append(f"# TYPE {key.split('{')[0]} gauge")
        lines.append(f"{key} {value:.4f}")
    for name, values in sorted(summaries.items()):
        lines.append(f"# TYPE {name} summary")
        for q in (0.5, 0.95, 0.99):
            lines.append(f'{name}{{quantile="{q}"}} {_quantile(values, q):.6f}')
        lines.append(f"{name}_count {len(values)}")
        lines.append(f"{name}_sum {sum(values):.6f}")
    return "\n".join(lines) + "\n"


class MetricsHandler(BaseHTTPRequestHandler):
    def log_message(self, format, *args):
        pass  # no access logs

    def do_GET(self):
        if self.path not in ("/metrics", "/"):
            self.send_response(404)
            self.end_headers()
            return
        body = render_metrics().encode("utf-8")
        self.send_response(200)
        self.send_header("Content-Type", "text/plain; version=0.0.4")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)


def start_metrics_server(port: int = METRICS_PORT) -> None:
    """Serve /metrics from a daemon thread. Non-blocking."""
    def _serve():
        server = HTTPServer(("0.0.0.0", port), MetricsHandler)
        logger.info("Metrics server listening on port %d.", port)
        server.serve_forever()

    threading.Thread(target=_serve, daemon=True, name="metrics-server").start()


@contextmanager
def timed(summary_name: str):
    """Record the wall-clock duration of a block into a summary."""
    start = time.monotonic()
    try:
        yield
    finally:
        observe(summary_name, time.monotonic() - start)
