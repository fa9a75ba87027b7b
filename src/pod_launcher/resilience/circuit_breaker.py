"""
Circuit breaker protecting the cluster API from overload.

Protects against scenarios like:
- API server restarts or overload
- Network partitions between the launcher and the cluster
- Expired service-account credentials hammering the API

States:
- CLOSED: Normal operation, requests pass through
- OPEN: Failing, requests rejected immediately (fast-fail)
- HALF_OPEN: Testing recovery, a single probe request allowed

Usage:
    breaker = CircuitBreaker("kubernetes")
    response = await breaker.call(lambda: send(request))
"""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

from pod_launcher.common.exceptions import (
    CircuitOpenError,
    ErrorCategory,
    classify_exception,
)
from pod_launcher.common.logging import log_exception, log_with_context

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Rejecting requests
    HALF_OPEN = "half_open"  # Testing recovery


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker behavior."""

    # Consecutive failed calls before opening circuit
    failure_threshold: int = 5

    # Seconds to wait in open state before probing
    reset_timeout_seconds: float = 30.0

    # Probe calls allowed in half-open
    half_open_max_calls: int = 1

    # Probe successes in half-open before closing
    success_threshold: int = 1


class CircuitBreaker:
    """
    Circuit breaker with exception-aware failure tracking.

    Safe for concurrent access; the lock is never held across an await.
    """

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        on_state_change: Optional[Callable[[CircuitState, CircuitState], None]] = None,
    ):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self.on_state_change = on_state_change

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._opened_at: Optional[float] = None
        self._half_open_calls = 0

        self._lock = threading.RLock()

    @property
    def state(self) -> CircuitState:
        """Current circuit state (may transition on access)."""
        with self._lock:
            self._check_state_transition()
            return self._state

    def peek_state(self) -> CircuitState:
        """Current state without applying a pending cooldown transition."""
        with self._lock:
            return self._state

    def _should_count_failure(self, exc: BaseException) -> bool:
        """Only service-side trouble counts; permanent errors are our own bugs."""
        return classify_exception(exc) in (
            ErrorCategory.TRANSIENT,
            ErrorCategory.UNKNOWN,
        )

    def _check_state_transition(self) -> None:
        """Check if state should transition (called under lock)."""
        if self._state == CircuitState.OPEN and self._opened_at is not None:
            elapsed = time.monotonic() - self._opened_at
            if elapsed >= self.config.reset_timeout_seconds:
                log_with_context(
                    logger,
                    logging.DEBUG,
                    "Circuit breaker cooldown elapsed, transitioning to half-open",
                    circuit_name=self.name,
                    elapsed_seconds=round(elapsed, 3),
                    reset_timeout_seconds=self.config.reset_timeout_seconds,
                )
                self._transition_to(CircuitState.HALF_OPEN)

    def _transition_to(self, new_state: CircuitState) -> None:
        """Transition to new state (called under lock)."""
        old_state = self._state
        if old_state == new_state:
            return

        self._state = new_state
        if new_state == CircuitState.CLOSED:
            self._failure_count = 0
            self._success_count = 0
            self._opened_at = None
            log_with_context(
                logger,
                logging.INFO,
                "Circuit closed",
                circuit_name=self.name,
                circuit_state="closed",
            )
        elif new_state == CircuitState.HALF_OPEN:
            self._success_count = 0
            self._half_open_calls = 0
            log_with_context(
                logger,
                logging.INFO,
                "Circuit half-open",
                circuit_name=self.name,
                circuit_state="half_open",
            )
        elif new_state == CircuitState.OPEN:
            self._success_count = 0
            self._opened_at = time.monotonic()
            log_with_context(
                logger,
                logging.WARNING,
                "Circuit open",
                circuit_name=self.name,
                circuit_state="open",
                reset_timeout_seconds=self.config.reset_timeout_seconds,
            )

        if self.on_state_change:
            try:
                self.on_state_change(old_state, new_state)
            except Exception as e:
                log_exception(
                    logger,
                    e,
                    "Error in circuit state change callback",
                    circuit_name=self.name,
                    level=logging.WARNING,
                    include_traceback=False,
                )

    def _record_success(self) -> None:
        """Record successful call (called under lock)."""
        if self._state == CircuitState.HALF_OPEN:
            self._success_count += 1
            if self._success_count >= self.config.success_threshold:
                self._transition_to(CircuitState.CLOSED)
        elif self._state == CircuitState.CLOSED:
            # Consecutive failure tracking
            self._failure_count = 0

    def _record_failure(self, exc: BaseException) -> None:
        """Record failed call (called under lock)."""
        if not self._should_count_failure(exc):
            log_with_context(
                logger,
                logging.DEBUG,
                "Circuit breaker failure not counted",
                circuit_name=self.name,
                circuit_state=self._state.value,
                error_type=type(exc).__name__,
            )
            self._release_probe()
            return

        if self._state == CircuitState.HALF_OPEN:
            log_with_context(
                logger,
                logging.DEBUG,
                "Circuit breaker probe failed",
                circuit_name=self.name,
                error_type=type(exc).__name__,
                action="transitioning to open",
            )
            self._transition_to(CircuitState.OPEN)
        elif self._state == CircuitState.CLOSED:
            self._failure_count += 1
            log_with_context(
                logger,
                logging.DEBUG,
                "Circuit breaker failure recorded",
                circuit_name=self.name,
                circuit_state=self._state.value,
                error_type=type(exc).__name__,
                failure_count=self._failure_count,
                failure_threshold=self.config.failure_threshold,
            )
            if self._failure_count >= self.config.failure_threshold:
                self._transition_to(CircuitState.OPEN)

    def _release_probe(self) -> None:
        """Free a half-open slot whose probe said nothing about the service."""
        if self._state == CircuitState.HALF_OPEN:
            self._half_open_calls = max(0, self._half_open_calls - 1)

    def _can_execute(self) -> bool:
        """Check if call can proceed (called under lock)."""
        self._check_state_transition()

        if self._state == CircuitState.CLOSED:
            return True

        if self._state == CircuitState.OPEN:
            return False

        if self._half_open_calls < self.config.half_open_max_calls:
            self._half_open_calls += 1
            return True

        return False

    def _get_retry_after(self) -> float:
        """Get seconds until circuit might half-open."""
        if self._opened_at is None:
            return 0.0
        elapsed = time.monotonic() - self._opened_at
        return max(0.0, self.config.reset_timeout_seconds - elapsed)

    async def call(self, func: Callable[[], Awaitable[T]]) -> T:
        """
        Await a coroutine factory through the circuit breaker.

        Args:
            func: Zero-argument callable returning an awaitable

        Returns:
            Result of the awaitable

        Raises:
            CircuitOpenError: If circuit is open
            Exception: Any exception from func (also recorded as failure)
        """
        with self._lock:
            if not self._can_execute():
                raise CircuitOpenError(self.name, self._get_retry_after())

        # Await outside lock
        try:
            result = await func()
        except asyncio.CancelledError:
            with self._lock:
                self._release_probe()
            raise
        except Exception as e:
            with self._lock:
                self._record_failure(e)
            raise

        with self._lock:
            self._record_success()
        return result
