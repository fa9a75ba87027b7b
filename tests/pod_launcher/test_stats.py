"""Tests for request statistics tracking."""

import threading

import pytest

from pod_launcher.resilience.circuit_breaker import CircuitState
from pod_launcher.stats import StatsSnapshot, StatsTracker


@pytest.fixture
def tracker():
    return StatsTracker(lambda: CircuitState.CLOSED)


class TestStatsTracker:
    def test_initial_snapshot_is_zero(self, tracker):
        snapshot = tracker.snapshot()

        assert snapshot == StatsSnapshot()
        assert snapshot.is_closed is True
        assert snapshot.to_dict() == {
            "requests": {
                "total": 0,
                "timeouts": 0,
                "success": 0,
                "failure": 0,
                "concurrent": 0,
                "averageTime": 0,
            },
            "breaker": {"isClosed": True},
        }

    def test_start_tracks_concurrency(self, tracker):
        tracker.on_start()
        tracker.on_start()

        snapshot = tracker.snapshot()
        assert snapshot.total == 2
        assert snapshot.concurrent == 2

    def test_success_updates_average(self, tracker):
        for duration in (10.0, 20.0, 60.0):
            tracker.on_start()
            tracker.on_success(duration)

        snapshot = tracker.snapshot()
        assert snapshot.success == 3
        assert snapshot.concurrent == 0
        assert snapshot.average_time == pytest.approx(30.0)

    def test_failures_do_not_perturb_average(self, tracker):
        tracker.on_start()
        tracker.on_success(50.0)
        tracker.on_start()
        tracker.on_failure()
        tracker.on_start()
        tracker.on_timeout()

        snapshot = tracker.snapshot()
        assert snapshot.average_time == pytest.approx(50.0)
        assert snapshot.failure == 2
        assert snapshot.timeouts == 1

    def test_timeout_counts_once_toward_failure(self, tracker):
        tracker.on_start()
        tracker.on_timeout()

        snapshot = tracker.snapshot()
        assert snapshot.timeouts == 1
        assert snapshot.failure == 1
        assert snapshot.total == snapshot.success + snapshot.failure

    def test_rejected_keeps_totals_balanced(self, tracker):
        tracker.on_rejected()

        snapshot = tracker.snapshot()
        assert snapshot.total == 1
        assert snapshot.failure == 1
        assert snapshot.concurrent == 0

    def test_concurrent_never_negative(self, tracker):
        tracker.on_failure()
        assert tracker.snapshot().concurrent == 0

    def test_snapshot_reports_circuit_state(self):
        tracker = StatsTracker(lambda: CircuitState.OPEN)

        snapshot = tracker.snapshot()

        assert snapshot.circuit_state == CircuitState.OPEN
        assert snapshot.to_dict()["breaker"] == {"isClosed": False}

    def test_threaded_updates_are_consistent(self, tracker):
        def worker():
            for _ in range(500):
                tracker.on_start()
                tracker.on_success(1.0)
                tracker.on_start()
                tracker.on_failure()

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        snapshot = tracker.snapshot()
        assert snapshot.total == 8000
        assert snapshot.success == 4000
        assert snapshot.failure == 4000
        assert snapshot.concurrent == 0
