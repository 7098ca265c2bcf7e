"""
Prometheus metrics for the sparks service.

This module provides:
- HTTP request counter (method, path, status)
- Request latency histogram (method, path)
- Spark lifecycle counters (created, expired, sweeps)
- Message post outcome counter (result)
- Live groups gauge

Metrics are stored in-memory using prometheus-client.
"""

from prometheus_client import Counter, Gauge, Histogram, generate_latest, CONTENT_TYPE_LATEST


# =============================================================================
# Metric Definitions
# =============================================================================

# HTTP request counter with labels for method, path, and status code
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "path", "status"]
)

# Request latency histogram in seconds
request_latency_seconds = Histogram(
    "request_latency_seconds",
    "Request latency in seconds",
    labelnames=["method", "path"]
)

groups_created_total = Counter(
    "groups_created_total",
    "Total sparks created"
)

groups_expired_total = Counter(
    "groups_expired_total",
    "Total sparks evicted after expiry"
)

sweeps_total = Counter(
    "sweeps_total",
    "Total expiry sweeps executed"
)

# result: created, ignored, policy_violation, not_found
messages_posted_total = Counter(
    "messages_posted_total",
    "Total message post outcomes",
    labelnames=["result"]
)

live_groups = Gauge(
    "live_groups",
    "Sparks currently held in the directory"
)


# =============================================================================
# Helper Functions
# =============================================================================

def record_http_request(method: str, path: str, status: int, latency_seconds: float) -> None:
    """
    Record an HTTP request in metrics.

    Args:
        method: HTTP method (GET, POST, etc.)
        path: Request path
        status: HTTP status code
        latency_seconds: Request processing time in seconds
    """
    # Normalize path to avoid high-cardinality labels
    normalized_path = path.split("?")[0]

    http_requests_total.labels(
        method=method,
        path=normalized_path,
        status=str(status)
    ).inc()

    request_latency_seconds.labels(
        method=method,
        path=normalized_path
    ).observe(latency_seconds)


def record_group_created(live_count: int) -> None:
    groups_created_total.inc()
    live_groups.set(live_count)


def record_sweep(expired_count: int, live_count: int) -> None:
    """
    Record one expiry sweep.

    Args:
        expired_count: Groups evicted by this sweep
        live_count: Groups remaining afterwards
    """
    sweeps_total.inc()
    if expired_count:
        groups_expired_total.inc(expired_count)
    live_groups.set(live_count)


def record_post_outcome(result: str) -> None:
    """
    Record a message post outcome.

    Args:
        result: Processing result - one of:
            - "created": Message appended to the group log
            - "ignored": Blank text, nothing stored
            - "policy_violation": Anonymous post refused
            - "not_found": Unknown or expired group
    """
    messages_posted_total.labels(result=result).inc()


def get_metrics() -> bytes:
    """Generate Prometheus exposition format metrics."""
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
