"""
Prometheus metrics for careaudit.

Exposes audit log metrics via HTTP /metrics endpoint for Prometheus scraping.

Environment Variables:
    CAREAUDIT_METRICS_ENABLED: Enable metrics server (true/false) - default: false
    CAREAUDIT_METRICS_PORT: HTTP port for /metrics endpoint - default: 9464

Usage:
    from careaudit.metrics import start_metrics_server, track_append

    start_metrics_server(enabled=True, port=9464)
    track_append("login_success")
"""

import logging
import threading
from contextlib import contextmanager
from typing import Generator, Optional

from prometheus_client import Counter, Histogram, start_http_server

logger = logging.getLogger(__name__)

APPENDS_TOTAL: Optional[Counter] = None
APPEND_FAILURES_TOTAL: Optional[Counter] = None
APPEND_DURATION: Optional[Histogram] = None
VERIFY_RUNS_TOTAL: Optional[Counter] = None
VERIFY_BROKEN_ENTRIES_TOTAL: Optional[Counter] = None
CHECKPOINT_VERIFY_FAILURES: Optional[Counter] = None

_metrics_initialized = False
_metrics_lock = threading.Lock()


def init_metrics() -> None:
    """
    Initialize Prometheus metrics (idempotent).

    Metrics are registered in the default registry once per process.
    """
    global APPENDS_TOTAL, APPEND_FAILURES_TOTAL, APPEND_DURATION
    global VERIFY_RUNS_TOTAL, VERIFY_BROKEN_ENTRIES_TOTAL, CHECKPOINT_VERIFY_FAILURES
    global _metrics_initialized

    with _metrics_lock:
        if _metrics_initialized:
            return

        APPENDS_TOTAL = Counter(
            "careaudit_appends_total",
            "Total number of entries appended to the audit log",
            labelnames=["event_type"],
        )

        APPEND_FAILURES_TOTAL = Counter(
            "careaudit_append_failures_total",
            "Total number of audit appends that were not recorded",
            labelnames=["reason"],
        )

        APPEND_DURATION = Histogram(
            "careaudit_append_duration_seconds",
            "Duration of audit append operations in seconds",
            buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0),
        )

        VERIFY_RUNS_TOTAL = Counter(
            "careaudit_verify_runs_total",
            "Total number of integrity verification runs",
        )

        VERIFY_BROKEN_ENTRIES_TOTAL = Counter(
            "careaudit_verify_broken_entries_total",
            "Total number of broken entries reported by integrity verification",
        )

        CHECKPOINT_VERIFY_FAILURES = Counter(
            "careaudit_checkpoint_verify_failures_total",
            "Total number of checkpoint verification failures",
        )

        _metrics_initialized = True
        logger.info("Prometheus metrics initialized")


def start_metrics_server(enabled: bool, port: int) -> None:
    """
    Start Prometheus metrics HTTP server in background thread.

    Args:
        enabled: Whether to start metrics server (CAREAUDIT_METRICS_ENABLED)
        port: HTTP port for /metrics endpoint (CAREAUDIT_METRICS_PORT)
    """
    init_metrics()

    if not enabled:
        logger.info("Metrics server disabled (CAREAUDIT_METRICS_ENABLED=false)")
        return

    # start_http_server is non-blocking (starts daemon thread)
    start_http_server(port, addr="0.0.0.0")
    logger.info(f"Metrics server started on http://0.0.0.0:{port}/metrics")


@contextmanager
def track_append_duration() -> Generator[None, None, None]:
    if APPEND_DURATION is None:
        yield
        return

    with APPEND_DURATION.time():
        yield


def track_append(event_type: str) -> None:
    if APPENDS_TOTAL is not None:
        APPENDS_TOTAL.labels(event_type=event_type).inc()


def track_append_failure(reason: str) -> None:
    """
    Args:
        reason: Short failure class ("conflict", "storage", "encoding", ...)
    """
    if APPEND_FAILURES_TOTAL is not None:
        APPEND_FAILURES_TOTAL.labels(reason=reason).inc()


def track_verification(broken_entries: int) -> None:
    if VERIFY_RUNS_TOTAL is not None:
        VERIFY_RUNS_TOTAL.inc()
    if VERIFY_BROKEN_ENTRIES_TOTAL is not None and broken_entries:
        VERIFY_BROKEN_ENTRIES_TOTAL.inc(broken_entries)


def track_checkpoint_failure() -> None:
    if CHECKPOINT_VERIFY_FAILURES is not None:
        CHECKPOINT_VERIFY_FAILURES.inc()
