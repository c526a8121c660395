from __future__ import annotations

import contextlib
import contextvars
import json
import logging
import threading
import time
import uuid
from datetime import datetime, timezone
from typing import Dict

from flask import g, has_request_context, request


_HTTP_DURATION_BUCKETS_MS = (5.0, 10.0, 25.0, 50.0, 100.0, 250.0, 500.0, 1000.0, 2500.0, 5000.0, 10000.0)
_IDO_DURATION_BUCKETS_MS = (25.0, 50.0, 100.0, 250.0, 500.0, 1000.0, 2500.0, 5000.0, 10000.0, 30000.0)

_LOG_REQUEST_ID_CTX: contextvars.ContextVar[str] = contextvars.ContextVar("log_request_id", default="")


def _normalize_request_id(value: str | None) -> str:
    return str(value or "").strip() or "n/a"


def set_log_request_id(request_id: str | None) -> None:
    _LOG_REQUEST_ID_CTX.set(_normalize_request_id(request_id))


@contextlib.contextmanager
def bind_request_id(request_id: str | None):
    token = _LOG_REQUEST_ID_CTX.set(_normalize_request_id(request_id))
    try:
        yield _LOG_REQUEST_ID_CTX.get()
    finally:
        _LOG_REQUEST_ID_CTX.reset(token)


def _background_request_id(default: str | None = None) -> str:
    request_id = str(_LOG_REQUEST_ID_CTX.get() or "").strip()
    if request_id:
        return request_id
    return default or "n/a"


class JsonLogFormatter(logging.Formatter):
    _base_keys = {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
    }

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, object] = {
            "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if has_request_context():
            payload["request_id"] = current_request_id(default="n/a")
            payload["path"] = request.path
            payload["method"] = request.method
            if request.url_rule is not None:
                payload["route"] = request.url_rule.rule
        else:
            record_request_id = str(getattr(record, "request_id", "") or "").strip()
            payload["request_id"] = record_request_id or _background_request_id(default="n/a")

        for key, value in record.__dict__.items():
            if key in self._base_keys or key.startswith("_"):
                continue
            if key in payload:
                continue
            if callable(value):
                continue
            payload[key] = value

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True, separators=(",", ":"), default=str)


def configure_json_logging(app) -> None:
    if not bool(app.config.get("LOG_JSON", True)):
        return
    level_name = str(app.config.get("LOG_LEVEL", "INFO")).strip().upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonLogFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(level)
    app.logger.handlers = []
    app.logger.propagate = True


def ensure_request_id() -> str:
    request_id = str(getattr(g, "request_id", "") or "").strip()
    if request_id:
        set_log_request_id(request_id)
        return request_id
    incoming = str(request.headers.get("X-Request-Id") or "").strip()
    request_id = incoming or str(uuid.uuid4())
    g.request_id = request_id
    set_log_request_id(request_id)
    return request_id


def current_request_id(default: str | None = None) -> str:
    if has_request_context():
        request_id = str(getattr(g, "request_id", "") or "").strip()
        if request_id:
            return request_id
    return _background_request_id(default=default)


class MetricsRegistry:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._requests_total = 0
        self._errors_total = 0
        self._by_route: Dict[str, Dict[str, float]] = {}

        self._http_request_total: Dict[tuple[str, str, str], int] = {}
        self._http_request_duration_ms: Dict[tuple[str, str], dict] = {}

        self._ido_request_total: Dict[tuple[str, str], int] = {}
        self._ido_request_duration_ms = self._new_histogram_state(_IDO_DURATION_BUCKETS_MS)
        self._ido_cache_hits_total = 0
        self._job_execution_total: Dict[str, int] = {}
        self._job_records_exported_total = 0

    @staticmethod
    def _bucket_label(limit: float) -> str:
        return f"{limit:g}"

    @classmethod
    def _new_histogram_state(cls, limits: tuple[float, ...]) -> dict:
        return {
            "count": 0,
            "sum": 0.0,
            "buckets": {cls._bucket_label(limit): 0 for limit in limits} | {"+Inf": 0},
        }

    @classmethod
    def _observe_histogram(cls, state: dict, value: float, limits: tuple[float, ...]) -> None:
        duration = max(0.0, float(value))
        state["count"] += 1
        state["sum"] += duration
        for limit in limits:
            if duration <= limit:
                key = cls._bucket_label(limit)
                state["buckets"][key] = int(state["buckets"].get(key, 0)) + 1
        state["buckets"]["+Inf"] = int(state["count"])

    @staticmethod
    def _copy_histogram(state: dict) -> dict:
        return {
            "count": int(state["count"]),
            "sum": float(state["sum"]),
            "buckets": {label: int(count) for label, count in state["buckets"].items()},
        }

    def observe_http(self, method: str, route: str, status_code: int, duration_ms: float) -> None:
        method_key = str(method or "GET").strip().upper() or "GET"
        route_key = str(route or "unknown").strip() or "unknown"
        status_key = str(int(status_code))

        key = f"{method_key} {route_key}"
        with self._lock:
            bucket = self._by_route.setdefault(
                key,
                {
                    "requests": 0.0,
                    "errors": 0.0,
                    "latency_sum_ms": 0.0,
                    "latency_max_ms": 0.0,
                },
            )
            bucket["requests"] += 1
            bucket["latency_sum_ms"] += max(0.0, float(duration_ms))
            bucket["latency_max_ms"] = max(bucket["latency_max_ms"], max(0.0, float(duration_ms)))
            self._requests_total += 1
            if int(status_code) >= 400:
                bucket["errors"] += 1
                self._errors_total += 1

            self._http_request_total[(method_key, route_key, status_key)] = (
                int(self._http_request_total.get((method_key, route_key, status_key), 0)) + 1
            )
            hist_key = (method_key, route_key)
            histogram = self._http_request_duration_ms.setdefault(
                hist_key,
                self._new_histogram_state(_HTTP_DURATION_BUCKETS_MS),
            )
            self._observe_histogram(histogram, duration_ms, _HTTP_DURATION_BUCKETS_MS)

    def observe_ido_request(self, operation: str, outcome: str, duration_ms: float) -> None:
        key = (
            str(operation or "unknown").strip() or "unknown",
            str(outcome or "unknown").strip().lower() or "unknown",
        )
        with self._lock:
            self._ido_request_total[key] = int(self._ido_request_total.get(key, 0)) + 1
            self._observe_histogram(self._ido_request_duration_ms, duration_ms, _IDO_DURATION_BUCKETS_MS)

    def observe_ido_cache_hit(self, count: int = 1) -> None:
        increment = max(0, int(count or 0))
        if increment <= 0:
            return
        with self._lock:
            self._ido_cache_hits_total += increment

    def observe_job_execution(self, status: str, record_count: int = 0) -> None:
        status_key = str(status or "unknown").strip().lower() or "unknown"
        with self._lock:
            self._job_execution_total[status_key] = int(self._job_execution_total.get(status_key, 0)) + 1
            self._job_records_exported_total += max(0, int(record_count or 0))

    def snapshot(self) -> dict:
        with self._lock:
            route_stats = []
            for route, bucket in self._by_route.items():
                requests_count = int(bucket["requests"])
                avg_ms = 0.0
                if requests_count > 0:
                    avg_ms = float(bucket["latency_sum_ms"]) / requests_count
                route_stats.append(
                    {
                        "route": route,
                        "requests": requests_count,
                        "errors": int(bucket["errors"]),
                        "avg_latency_ms": round(avg_ms, 2),
                        "max_latency_ms": round(float(bucket["latency_max_ms"]), 2),
                    }
                )
            route_stats.sort(key=lambda item: item["requests"], reverse=True)
            return {
                "requests_total": int(self._requests_total),
                "errors_total": int(self._errors_total),
                "by_route": route_stats[:40],
                "ido": {
                    "requests_total": int(sum(self._ido_request_total.values())),
                    "failures_total": int(
                        sum(value for (_op, outcome), value in self._ido_request_total.items() if outcome != "success")
                    ),
                    "cache_hits_total": int(self._ido_cache_hits_total),
                },
                "jobs": {
                    "executions_total": int(sum(self._job_execution_total.values())),
                    "by_status": dict(sorted(self._job_execution_total.items())),
                    "records_exported_total": int(self._job_records_exported_total),
                },
            }

    def prometheus_snapshot(self) -> dict:
        with self._lock:
            http_totals = [
                {
                    "method": method,
                    "route": route,
                    "status": status,
                    "value": int(value),
                }
                for (method, route, status), value in sorted(self._http_request_total.items())
            ]
            http_histograms = []
            for (method, route), histogram in sorted(self._http_request_duration_ms.items()):
                http_histograms.append({"method": method, "route": route, **self._copy_histogram(histogram)})

            return {
                "http_request_total": http_totals,
                "http_request_duration_ms": http_histograms,
                "ido_request_total": [
                    {"operation": operation, "outcome": outcome, "value": int(value)}
                    for (operation, outcome), value in sorted(self._ido_request_total.items())
                ],
                "ido_request_duration_ms": self._copy_histogram(self._ido_request_duration_ms),
                "ido_cache_hits_total": int(self._ido_cache_hits_total),
                "job_execution_total": dict(sorted(self._job_execution_total.items())),
                "job_records_exported_total": int(self._job_records_exported_total),
            }

    def reset(self) -> None:
        with self._lock:
            self._requests_total = 0
            self._errors_total = 0
            self._by_route.clear()
            self._http_request_total.clear()
            self._http_request_duration_ms.clear()
            self._ido_request_total.clear()
            self._ido_request_duration_ms = self._new_histogram_state(_IDO_DURATION_BUCKETS_MS)
            self._ido_cache_hits_total = 0
            self._job_execution_total.clear()
            self._job_records_exported_total = 0


_METRICS = MetricsRegistry()


def mark_request_start() -> None:
    g._request_started_at = time.perf_counter()


def observe_response(response):
    started = float(getattr(g, "_request_started_at", 0.0) or 0.0)
    elapsed_ms = 0.0
    if started > 0.0:
        elapsed_ms = (time.perf_counter() - started) * 1000.0
    route = request.url_rule.rule if request.url_rule is not None else request.path
    _METRICS.observe_http(request.method, route, int(response.status_code), elapsed_ms)
    response.headers["X-Response-Time-Ms"] = f"{elapsed_ms:.2f}"
    return response


def metrics_snapshot() -> dict:
    return _METRICS.snapshot()


def observe_ido_request(operation: str, outcome: str, duration_ms: float) -> None:
    _METRICS.observe_ido_request(operation, outcome, duration_ms)


def observe_ido_cache_hit(count: int = 1) -> None:
    _METRICS.observe_ido_cache_hit(count)


def observe_job_execution(status: str, record_count: int = 0) -> None:
    _METRICS.observe_job_execution(status, record_count)


def _prom_label(value: object) -> str:
    return str(value).replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def _prom_line(name: str, value: int | float, labels: dict[str, object] | None = None) -> str:
    if labels:
        labels_blob = ",".join(f'{key}="{_prom_label(val)}"' for key, val in sorted(labels.items()))
        return f"{name}{{{labels_blob}}} {value}"
    return f"{name} {value}"


def _prom_histogram(lines: list[str], name: str, hist: dict, base_labels: dict[str, object] | None = None) -> None:
    labels = dict(base_labels or {})
    for le_label, bucket_value in hist["buckets"].items():
        lines.append(_prom_line(f"{name}_bucket", int(bucket_value), labels=labels | {"le": le_label}))
    lines.append(_prom_line(f"{name}_sum", float(hist["sum"]), labels=labels or None))
    lines.append(_prom_line(f"{name}_count", int(hist["count"]), labels=labels or None))


def prometheus_metrics_text(*, active_connections: int = 0) -> str:
    snapshot = _METRICS.prometheus_snapshot()
    lines: list[str] = []

    lines.append("# HELP http_request_total Total HTTP requests by method, route and status.")
    lines.append("# TYPE http_request_total counter")
    for sample in snapshot["http_request_total"]:
        lines.append(
            _prom_line(
                "http_request_total",
                int(sample["value"]),
                labels={
                    "method": sample["method"],
                    "route": sample["route"],
                    "status": sample["status"],
                },
            )
        )

    lines.append("# HELP http_request_duration_ms HTTP request duration in milliseconds.")
    lines.append("# TYPE http_request_duration_ms histogram")
    for hist in snapshot["http_request_duration_ms"]:
        _prom_histogram(lines, "http_request_duration_ms", hist, {"method": hist["method"], "route": hist["route"]})

    lines.append("# HELP ido_request_total Outbound IDO API calls by operation and outcome.")
    lines.append("# TYPE ido_request_total counter")
    for sample in snapshot["ido_request_total"]:
        lines.append(
            _prom_line(
                "ido_request_total",
                int(sample["value"]),
                labels={"operation": sample["operation"], "outcome": sample["outcome"]},
            )
        )

    lines.append("# HELP ido_request_duration_ms Outbound IDO API call duration in milliseconds.")
    lines.append("# TYPE ido_request_duration_ms histogram")
    _prom_histogram(lines, "ido_request_duration_ms", snapshot["ido_request_duration_ms"])

    lines.append("# HELP ido_cache_hits_total Distinct value lookups served from cache.")
    lines.append("# TYPE ido_cache_hits_total counter")
    lines.append(_prom_line("ido_cache_hits_total", int(snapshot["ido_cache_hits_total"])))

    lines.append("# HELP ido_active_connections Live IDO sessions held by this process.")
    lines.append("# TYPE ido_active_connections gauge")
    lines.append(_prom_line("ido_active_connections", int(active_connections)))

    lines.append("# HELP job_execution_total Job executions by final status.")
    lines.append("# TYPE job_execution_total counter")
    for status, value in snapshot["job_execution_total"].items():
        lines.append(_prom_line("job_execution_total", int(value), labels={"status": status}))

    lines.append("# HELP job_records_exported_total Records written to export files.")
    lines.append("# TYPE job_records_exported_total counter")
    lines.append(_prom_line("job_records_exported_total", int(snapshot["job_records_exported_total"])))

    return "\n".join(lines) + "\n"


def reset_metrics_for_tests() -> None:
    _METRICS.reset()
    set_log_request_id(None)
