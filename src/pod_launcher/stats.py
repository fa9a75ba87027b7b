"""
Request statistics for the resilient caller.

Counts one entry per call through the caller (retries are internal to a
call). Once every in-flight call has resolved, ``total == success + failure``.
A timeout counts toward both ``timeouts`` and ``failure``.
"""

import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict

from pod_launcher.resilience.circuit_breaker import CircuitState


@dataclass(frozen=True)
class StatsSnapshot:
    """Read-only view of request statistics and circuit state."""

    total: int = 0
    timeouts: int = 0
    success: int = 0
    failure: int = 0
    concurrent: int = 0
    average_time: float = 0.0  # ms, successful calls only
    circuit_state: CircuitState = CircuitState.CLOSED

    @property
    def is_closed(self) -> bool:
        return self.circuit_state == CircuitState.CLOSED

    def to_dict(self) -> Dict[str, Any]:
        """Host-facing shape: request counters plus breaker status."""
        return {
            "requests": {
                "total": self.total,
                "timeouts": self.timeouts,
                "success": self.success,
                "failure": self.failure,
                "concurrent": self.concurrent,
                "averageTime": self.average_time,
            },
            "breaker": {
                "isClosed": self.is_closed,
            },
        }


class StatsTracker:
    """Lock-guarded counters updated by the resilient caller."""

    def __init__(self, state_provider: Callable[[], CircuitState]):
        self._state_provider = state_provider
        self._lock = threading.Lock()
        self._total = 0
        self._timeouts = 0
        self._success = 0
        self._failure = 0
        self._concurrent = 0
        self._average_time = 0.0

    def on_start(self) -> None:
        with self._lock:
            self._total += 1
            self._concurrent += 1

    def on_success(self, duration_ms: float) -> None:
        with self._lock:
            self._release()
            self._success += 1
            # Incremental mean over successes
            self._average_time += (duration_ms - self._average_time) / self._success

    def on_failure(self) -> None:
        with self._lock:
            self._release()
            self._failure += 1

    def on_timeout(self) -> None:
        with self._lock:
            self._release()
            self._timeouts += 1
            self._failure += 1

    def on_rejected(self) -> None:
        """Fast-failed call that never became concurrent."""
        with self._lock:
            self._total += 1
            self._failure += 1

    def _release(self) -> None:
        if self._concurrent > 0:
            self._concurrent -= 1

    def snapshot(self) -> StatsSnapshot:
        state = self._state_provider()
        with self._lock:
            return StatsSnapshot(
                total=self._total,
                timeouts=self._timeouts,
                success=self._success,
                failure=self._failure,
                concurrent=self._concurrent,
                average_time=self._average_time,
                circuit_state=state,
            )
