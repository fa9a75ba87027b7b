"""
Prometheus metrics for pod launcher monitoring.

Provides instrumentation for:
- Cluster API request outcomes and latency
- Retry attempts
- Circuit breaker state tracking
- Job start/stop results
"""

from typing import Optional

from prometheus_client import Counter, Gauge, Histogram

requests_total = Counter(
    "pod_launcher_requests_total",
    "Total number of cluster API calls by final outcome",
    ["method", "outcome"],  # outcome: success, failure, timeout, rejected
)

request_duration_seconds = Histogram(
    "pod_launcher_request_duration_seconds",
    "Latency of successful cluster API calls, retries included",
    ["method"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

retries_total = Counter(
    "pod_launcher_retries_total",
    "Total number of retried cluster API attempts",
    ["method"],
)

circuit_breaker_state = Gauge(
    "pod_launcher_circuit_state",
    "Circuit breaker state (0=closed, 1=half-open, 2=open)",
    ["circuit_name"],
)

jobs_total = Counter(
    "pod_launcher_jobs_total",
    "Total number of job operations by result",
    ["operation", "status"],  # operation: start, stop; status: succeeded, failed
)

_CIRCUIT_STATE_VALUES = {"closed": 0, "half_open": 1, "open": 2}


def record_request(method: str, outcome: str, duration_seconds: Optional[float] = None) -> None:
    """Record the final outcome of one call through the resilient caller."""
    requests_total.labels(method=method, outcome=outcome).inc()
    if duration_seconds is not None:
        request_duration_seconds.labels(method=method).observe(duration_seconds)


def record_retry(method: str) -> None:
    retries_total.labels(method=method).inc()


def update_circuit_state(circuit_name: str, state: str) -> None:
    circuit_breaker_state.labels(circuit_name=circuit_name).set(
        _CIRCUIT_STATE_VALUES.get(state, 0)
    )


def record_job(operation: str, succeeded: bool) -> None:
    jobs_total.labels(
        operation=operation, status="succeeded" if succeeded else "failed"
    ).inc()
