from __future__ import annotations

import os

from prometheus_client import Counter, Gauge, Histogram

from .config import parse_bool

METRICS_ENABLED = parse_bool(os.environ.get("PIXEDGE_METRICS_ENABLED", "true"))

if METRICS_ENABLED:
    REQUEST_LATENCY = Histogram(
        "pixedge_http_request_duration_seconds",
        "HTTP request latency",
        ["method", "endpoint"],
    )
    REQUEST_COUNT = Counter(
        "pixedge_http_requests_total",
        "Total HTTP requests",
        ["method", "endpoint", "status"],
    )
    REQUEST_ERRORS = Counter(
        "pixedge_http_request_errors_total",
        "HTTP error responses",
        ["method", "endpoint", "status"],
    )
    REQUEST_IN_FLIGHT = Gauge(
        "pixedge_http_requests_in_flight",
        "In-flight HTTP requests",
    )
    UPLOAD_COUNT = Counter(
        "pixedge_uploads_total",
        "Upload attempts by principal kind and outcome",
        ["principal", "status"],
    )
    RATE_LIMIT_REJECTIONS = Counter(
        "pixedge_rate_limit_rejections_total",
        "Uploads rejected by the fixed-window limiter",
        ["tier"],
    )
    WEBHOOK_DELIVERIES = Counter(
        "pixedge_webhook_deliveries_total",
        "Webhook delivery attempts",
        ["status"],
    )
    BACKGROUND_TASKS = Gauge(
        "pixedge_background_tasks",
        "Background tasks running",
    )
else:
    REQUEST_LATENCY = None
    REQUEST_COUNT = None
    REQUEST_ERRORS = None
    REQUEST_IN_FLIGHT = None
    UPLOAD_COUNT = None
    RATE_LIMIT_REJECTIONS = None
    WEBHOOK_DELIVERIES = None
    BACKGROUND_TASKS = None
