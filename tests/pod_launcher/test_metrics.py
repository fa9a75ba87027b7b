"""Tests for Prometheus instrumentation."""

from prometheus_client import REGISTRY

from pod_launcher.common import metrics


def sample(name, labels):
    return REGISTRY.get_sample_value(name, labels) or 0.0


def test_record_request_counts_and_observes():
    labels = {"method": "PATCH", "outcome": "success"}
    before = sample("pod_launcher_requests_total", labels)
    observed = sample("pod_launcher_request_duration_seconds_count", {"method": "PATCH"})

    metrics.record_request("PATCH", "success", 0.2)
    metrics.record_request("PATCH", "success")

    assert sample("pod_launcher_requests_total", labels) == before + 2
    assert (
        sample("pod_launcher_request_duration_seconds_count", {"method": "PATCH"})
        == observed + 1
    )


def test_update_circuit_state():
    metrics.update_circuit_state("metrics-test", "open")
    assert sample("pod_launcher_circuit_state", {"circuit_name": "metrics-test"}) == 2

    metrics.update_circuit_state("metrics-test", "half_open")
    assert sample("pod_launcher_circuit_state", {"circuit_name": "metrics-test"}) == 1

    metrics.update_circuit_state("metrics-test", "closed")
    assert sample("pod_launcher_circuit_state", {"circuit_name": "metrics-test"}) == 0


def test_record_job_and_retry():
    failed = {"operation": "stop", "status": "failed"}
    before_jobs = sample("pod_launcher_jobs_total", failed)
    before_retries = sample("pod_launcher_retries_total", {"method": "PATCH"})

    metrics.record_job("stop", succeeded=False)
    metrics.record_retry("PATCH")

    assert sample("pod_launcher_jobs_total", failed) == before_jobs + 1
    assert sample("pod_launcher_retries_total", {"method": "PATCH"}) == before_retries + 1
