"""
Prometheus Metrics for Observability

Tracks admission decisions, queue throughput and pipeline stage health.
Exposes /api/v1/metrics endpoint for Prometheus scraping.
"""

import time
from contextlib import contextmanager

from prometheus_client import (
    Counter,
    Histogram,
    Gauge,
    Info,
    generate_latest,
    CONTENT_TYPE_LATEST,
    REGISTRY
)

# =============================================================================
# Metrics Definitions
# =============================================================================

# Pipeline Latency - Per Stage
pipeline_latency_seconds = Histogram(
    "pipeline_latency_seconds",
    "Time spent in each pipeline stage",
    labelnames=["stage", "status"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0]
)

# Stages that fell back to pass-through
pipeline_stage_degraded_total = Counter(
    "pipeline_stage_degraded_total",
    "Pipeline stages that failed and passed their input through",
    labelnames=["stage"]
)

# Jobs Counter
jobs_total = Counter(
    "sticker_jobs_total",
    "Total number of sticker jobs processed",
    labelnames=["status", "failure_stage"]
)

# Submissions
jobs_submitted_total = Counter(
    "sticker_jobs_submitted_total",
    "Total number of jobs handed to the queue",
    labelnames=["mode", "status"]
)

# Active Jobs
active_jobs_gauge = Gauge(
    "sticker_active_jobs",
    "Number of currently processing jobs"
)

# Admission
admission_rejections_total = Counter(
    "admission_rejections_total",
    "Inbound images rejected before queueing",
    labelnames=["reason"]
)

# API Request Metrics
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "endpoint", "status"]
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration",
    labelnames=["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# Application Info
app_info = Info(
    "sticker_bot",
    "Application information"
)


# =============================================================================
# Helper Functions
# =============================================================================

def set_app_info(version: str, environment: str):
    """Set application info metric."""
    app_info.info({
        "version": version,
        "environment": environment
    })


@contextmanager
def track_stage_latency(stage: str):
    """
    Context manager to track stage latency.

    Usage:
        with track_stage_latency("outline"):
            # do work
    """
    start = time.time()
    status = "success"
    try:
        yield
    except Exception:
        status = "error"
        raise
    finally:
        duration = time.time() - start
        pipeline_latency_seconds.labels(stage=stage, status=status).observe(duration)


def record_stage_degraded(stage: str):
    pipeline_stage_degraded_total.labels(stage=stage).inc()


def record_job_completion(status: str, failure_stage: str = "none"):
    """Record job completion."""
    jobs_total.labels(status=status, failure_stage=failure_stage).inc()


def record_job_submitted(mode: str, status: str = "queued"):
    jobs_submitted_total.labels(mode=mode, status=status).inc()


def record_admission_rejection(reason: str):
    admission_rejections_total.labels(reason=reason).inc()


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest(REGISTRY)


def get_metrics_content_type() -> str:
    """Get the content type for Prometheus metrics."""
    return CONTENT_TYPE_LATEST
