from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

from services.canvas.parser import VERBS

REQUEST_COUNTER = Counter(
    "livecanvas_gateway_http_requests_total",
    "Total gateway HTTP requests",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "livecanvas_gateway_http_latency_seconds",
    "Gateway request latency",
    ["method", "path"],
    buckets=(0.005, 0.01, 0.03, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)
COMMAND_COUNTER = Counter(
    "livecanvas_commands_total",
    "Canvas commands executed, by verb and outcome",
    ["verb", "outcome"],
)
PARSER_WARNING_COUNTER = Counter(
    "livecanvas_parser_warnings_total",
    "Fenced blocks or block entries dropped by the command parser",
)


def record_http(method: str, path: str, status_code: int, duration_s: float) -> None:
    REQUEST_COUNTER.labels(method=method, path=path, status=str(status_code)).inc()
    REQUEST_LATENCY.labels(method=method, path=path).observe(duration_s)


def record_outcomes(outcomes: list[dict], warnings: int = 0) -> None:
    for row in outcomes:
        verb = str(row.get("verb") or "")
        if verb not in VERBS:
            verb = "unknown"
        outcome = "ok" if row.get("ok") else str(row.get("error") or "failed")
        COMMAND_COUNTER.labels(verb=verb, outcome=outcome).inc()
    if warnings:
        PARSER_WARNING_COUNTER.inc(warnings)


def metrics_response() -> tuple[bytes, str]:
    return generate_latest(), CONTENT_TYPE_LATEST
