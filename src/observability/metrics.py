"""
Prometheus metrics collection for royalty-ingest

This module provides metrics instrumentation for monitoring
job throughput, batch health and data quality.
"""
import os
from typing import Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Global registry for metrics
REGISTRY = CollectorRegistry()


# =======================
# JOB METRICS
# =======================

jobs_total = Counter(
    name="ingest_jobs_total",
    documentation="Total number of jobs by outcome",
    labelnames=["status"],  # status: completed, failed, skipped, swept
    registry=REGISTRY,
)

job_duration_seconds = Histogram(
    name="ingest_job_duration_seconds",
    documentation="Wall-clock time spent processing a job",
    labelnames=["file_format", "status"],
    buckets=[1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0, 1800.0],
    registry=REGISTRY,
)

checkpoint_failures_total = Counter(
    name="ingest_checkpoint_failures_total",
    documentation="Progress checkpoint writes that failed (non-fatal)",
    registry=REGISTRY,
)

# =======================
# BATCH METRICS
# =======================

batches_processed_total = Counter(
    name="ingest_batches_processed_total",
    documentation="Total number of batches processed",
    labelnames=["status"],  # status: success, failure
    registry=REGISTRY,
)

batch_duration_seconds = Histogram(
    name="ingest_batch_duration_seconds",
    documentation="Time spent embedding and upserting one batch",
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0],
    registry=REGISTRY,
)

embedding_duration_seconds = Histogram(
    name="ingest_embedding_duration_seconds",
    documentation="Time spent generating embeddings for one batch",
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0],
    registry=REGISTRY,
)

rows_upserted_total = Counter(
    name="ingest_rows_upserted_total",
    documentation="Total number of canonical rows written to the row store",
    registry=REGISTRY,
)

# =======================
# DATA QUALITY METRICS
# =======================

soft_coercions_total = Counter(
    name="ingest_soft_coercions_total",
    documentation="Cell values that could not be coerced and were stored as null",
    labelnames=["field_name"],
    registry=REGISTRY,
)


# =======================
# HELPER FUNCTIONS
# =======================

def generate_metrics() -> bytes:
    """
    Generate Prometheus metrics in text format

    Returns:
        Metrics in Prometheus text format
    """
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    """Content type for Prometheus metrics"""
    return CONTENT_TYPE_LATEST


def start_metrics_server(port: Optional[int] = None) -> None:
    """
    Start HTTP server for Prometheus metrics

    Args:
        port: Port to listen on (defaults to env var METRICS_PORT or 8000)
    """
    # Lazy import: the HTTP server is only needed when the endpoint is enabled
    from prometheus_client import start_http_server

    metrics_port = port or int(os.getenv("METRICS_PORT", "8000"))
    start_http_server(metrics_port, registry=REGISTRY)


def increment_counter(counter: Counter, value: float = 1.0, **labels) -> None:
    """
    Increment a counter metric

    Args:
        counter: Prometheus Counter metric
        value: Amount to increment (default: 1.0)
        **labels: Label values for the metric
    """
    if labels:
        counter.labels(**labels).inc(value)
    else:
        counter.inc(value)


def observe_histogram(histogram: Histogram, value: float, **labels) -> None:
    """
    Observe a value in a histogram metric

    Args:
        histogram: Prometheus Histogram metric
        value: Value to observe
        **labels: Label values for the metric
    """
    if labels:
        histogram.labels(**labels).observe(value)
    else:
        histogram.observe(value)


# =======================
# PIPELINE HELPERS
# =======================

def record_batch(row_count: int, success: bool, duration_seconds: float) -> None:
    """
    Record one embed/upsert batch.

    Args:
        row_count: Rows in the batch
        success: Whether the batch was persisted
        duration_seconds: Time taken for the batch
    """
    status = "success" if success else "failure"
    increment_counter(batches_processed_total, 1, status=status)
    observe_histogram(batch_duration_seconds, duration_seconds)
    if success and row_count > 0:
        increment_counter(rows_upserted_total, row_count)


def record_job(status: str, file_format: str | None = None, duration_seconds: float | None = None) -> None:
    """
    Record a job outcome.

    Args:
        status: completed, failed, skipped, superseded or swept
        file_format: csv, xlsx, pdf (unknown if not determined)
        duration_seconds: Processing time, when the job ran
    """
    increment_counter(jobs_total, 1, status=status)
    if duration_seconds is not None:
        observe_histogram(
            job_duration_seconds,
            duration_seconds,
            file_format=file_format or "unknown",
            status=status,
        )


def record_checkpoint_failure() -> None:
    increment_counter(checkpoint_failures_total, 1)


def record_soft_coercion(field_name: str) -> None:
    increment_counter(soft_coercions_total, 1, field_name=field_name)
