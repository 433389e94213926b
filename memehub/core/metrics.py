"""Prometheus metrics.

HTTP request metrics plus counters for the media pipeline: each ffmpeg
invocation, each download that degraded to a fallback, and the BaaS calls
made on behalf of requests.
"""

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    Info,
    CollectorRegistry,
    generate_latest,
    CONTENT_TYPE_LATEST,
    multiprocess,
)
import os

REGISTRY = CollectorRegistry()

# Gunicorn/uvicorn workers share metrics through this directory
if "PROMETHEUS_MULTIPROC_DIR" in os.environ or "prometheus_multiproc_dir" in os.environ:
    multiprocess.MultiProcessCollector(REGISTRY)


# ============================================
# Application Info
# ============================================
APP_INFO = Info(
    "memehub_app",
    "Application information",
    registry=REGISTRY,
)


# ============================================
# HTTP Request Metrics
# ============================================
HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
    registry=REGISTRY,
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
    registry=REGISTRY,
)

HTTP_REQUESTS_IN_PROGRESS = Gauge(
    "http_requests_in_progress",
    "Number of HTTP requests currently in progress",
    ["method", "endpoint"],
    registry=REGISTRY,
)


# ============================================
# Media Pipeline Metrics
# ============================================
MEDIA_OPERATIONS_TOTAL = Counter(
    "media_operations_total",
    "External media tool invocations by operation and outcome",
    ["operation", "status"],
    registry=REGISTRY,
)

MEDIA_OPERATION_DURATION_SECONDS = Histogram(
    "media_operation_duration_seconds",
    "External media tool invocation duration in seconds",
    ["operation"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0],
    registry=REGISTRY,
)

DOWNLOAD_FALLBACKS_TOTAL = Counter(
    "download_fallbacks_total",
    "Downloads served from a fallback source",
    ["stage", "reason"],
    registry=REGISTRY,
)

DOWNLOAD_BYTES_TOTAL = Counter(
    "download_bytes_total",
    "Bytes returned by the download endpoint",
    ["format"],
    registry=REGISTRY,
)


# ============================================
# Backend-as-a-service Metrics
# ============================================
BAAS_REQUESTS_TOTAL = Counter(
    "baas_requests_total",
    "Calls made to the Supabase backend",
    ["service", "operation", "status"],
    registry=REGISTRY,
)


def get_metrics() -> bytes:
    """Render the registry in Prometheus text format."""
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    return CONTENT_TYPE_LATEST


def set_app_info(version: str, environment: str) -> None:
    APP_INFO.info({
        "version": version,
        "environment": environment,
    })
