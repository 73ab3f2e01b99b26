"""Observability: structured logging, request logging, Prometheus metrics."""

from __future__ import annotations

import json
import logging
import threading
import time
from collections import defaultdict
from typing import Any

from fastapi import FastAPI, Request, Response

# --- Metrics constants ---
_HTTP_ERROR_THRESHOLD = 500
_MS_PER_SECOND = 1000

_EXTRA_FIELDS = ("event_type", "outcome", "method", "path", "status_code", "duration_ms")


# ---------------------------------------------------------------------------
# Structured JSON logging
# ---------------------------------------------------------------------------

class JsonFormatter(logging.Formatter):
    """Emit log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        log_dict: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[0] is not None:
            log_dict["exception"] = self.formatException(record.exc_info)
        for key in _EXTRA_FIELDS:
            val = getattr(record, key, None)
            if val is not None and val != "":
                log_dict[key] = val
        return json.dumps(log_dict, default=str)


def setup_logging(level: str = "INFO") -> None:
    """Configure root logger with JSON output."""
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    # Quiet noisy loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ---------------------------------------------------------------------------
# Prometheus-compatible metrics (no external dependency)
# ---------------------------------------------------------------------------

_lock = threading.Lock()
_request_count: dict[tuple[str, str, str], int] = defaultdict(int)
_request_latency_sum: dict[tuple[str, str], float] = defaultdict(float)
_request_latency_count: dict[tuple[str, str], int] = defaultdict(int)
_error_count: dict[tuple[str, str], int] = defaultdict(int)
_notification_count: dict[tuple[str, str], int] = defaultdict(int)
_delivery_count: dict[tuple[str, str], int] = defaultdict(int)


def record_request(method: str, path: str, status: int, duration: float) -> None:
    with _lock:
        _request_count[(method, path, str(status))] += 1
        _request_latency_sum[(method, path)] += duration
        _request_latency_count[(method, path)] += 1
        if status >= _HTTP_ERROR_THRESHOLD:
            _error_count[(method, path)] += 1


def record_outcome(outcome: str, event_type: str = "") -> None:
    with _lock:
        _notification_count[(outcome, event_type)] += 1


def record_delivery(adapter: str, ok: bool) -> None:
    with _lock:
        _delivery_count[(adapter, "ok" if ok else "failed")] += 1


def reset_metrics() -> None:
    """Clear all counters (for tests)."""
    with _lock:
        for counter in (
            _request_count, _request_latency_sum, _request_latency_count,
            _error_count, _notification_count, _delivery_count,
        ):
            counter.clear()


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def generate_metrics() -> str:
    """Render metrics in Prometheus text exposition format."""
    lines: list[str] = []

    with _lock:
        lines.append("# HELP tgnotify_http_requests_total Total HTTP requests by method, path, status.")
        lines.append("# TYPE tgnotify_http_requests_total counter")
        for (method, path, status), count in sorted(_request_count.items()):
            lines.append(f'tgnotify_http_requests_total{{method="{method}",path="{_escape(path)}",status="{status}"}} {count}')

        lines.append("# HELP tgnotify_http_request_duration_seconds Total request duration by method and path.")
        lines.append("# TYPE tgnotify_http_request_duration_seconds summary")
        for (method, path), total in sorted(_request_latency_sum.items()):
            cnt = _request_latency_count[(method, path)]
            lines.append(f'tgnotify_http_request_duration_seconds_sum{{method="{method}",path="{_escape(path)}"}} {total:.6f}')
            lines.append(f'tgnotify_http_request_duration_seconds_count{{method="{method}",path="{_escape(path)}"}} {cnt}')

        lines.append("# HELP tgnotify_http_errors_total Total 5xx errors.")
        lines.append("# TYPE tgnotify_http_errors_total counter")
        for (method, path), count in sorted(_error_count.items()):
            lines.append(f'tgnotify_http_errors_total{{method="{method}",path="{_escape(path)}"}} {count}')

        lines.append("# HELP tgnotify_notifications_total Relay outcomes by outcome and event type.")
        lines.append("# TYPE tgnotify_notifications_total counter")
        for (outcome, event_type), count in sorted(_notification_count.items()):
            labels = f'outcome="{outcome}"'
            if event_type:
                labels += f',type="{_escape(event_type)}"'
            lines.append(f"tgnotify_notifications_total{{{labels}}} {count}")

        lines.append("# HELP tgnotify_deliveries_total Delivery attempts by adapter and result.")
        lines.append("# TYPE tgnotify_deliveries_total counter")
        for (adapter, result), count in sorted(_delivery_count.items()):
            lines.append(f'tgnotify_deliveries_total{{adapter="{adapter}",result="{result}"}} {count}')

    return "\n".join(lines) + "\n"


# ---------------------------------------------------------------------------
# FastAPI middleware
# ---------------------------------------------------------------------------

def add_observability_middleware(app: FastAPI) -> None:
    """Add request logging and metrics collection middleware."""

    @app.middleware("http")
    async def observe_request(request: Request, call_next) -> Response:
        start = time.time()
        response: Response = await call_next(request)
        duration = time.time() - start

        path = request.url.path
        method = request.method
        status = response.status_code

        record_request(method, path, status, duration)

        logger = logging.getLogger("tgnotify.access")
        logger.info(
            "%s %s %d %.0fms",
            method, path, status, duration * _MS_PER_SECOND,
            extra={
                "method": method,
                "path": path,
                "status_code": status,
                "duration_ms": round(duration * _MS_PER_SECOND, 1),
            },
        )
        return response
