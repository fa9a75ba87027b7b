"""
Resilient caller for cluster API requests.

Wraps a transport with:
- Circuit breaker (fast-fail while the API is unhealthy)
- Per-attempt timeout
- Bounded exponential-backoff retry for transient failures
- Aggregate request statistics

One call through ``execute`` is one circuit breaker call and one stats entry,
however many attempts it takes. Any received response is a success here;
the HTTP status is interpreted by the caller's caller.
"""

import asyncio
import logging
import time
from typing import Awaitable, Optional, Protocol

from pod_launcher.common import metrics
from pod_launcher.common.exceptions import (
    CircuitOpenError,
    TimeoutError,
    is_retryable_error,
)
from pod_launcher.common.logging import LoggedClass
from pod_launcher.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
)
from pod_launcher.resilience.retry import RetryConfig
from pod_launcher.stats import StatsSnapshot, StatsTracker
from pod_launcher.transport import HttpRequest, HttpResponse

DEFAULT_TIMEOUT_SECONDS = 10.0


class Transport(Protocol):
    def send(self, request: HttpRequest) -> Awaitable[HttpResponse]:
        ...


class ResilientCaller(LoggedClass):
    """
    Executes HttpRequests through circuit breaker, timeout and retry.

    Usage:
        caller = ResilientCaller(AiohttpTransport())
        response = await caller.execute(HttpRequest("DELETE", url))
        print(caller.stats().to_dict())
    """

    log_component = "caller"

    def __init__(
        self,
        transport: Transport,
        retry_config: Optional[RetryConfig] = None,
        breaker_config: Optional[CircuitBreakerConfig] = None,
        timeout_seconds: Optional[float] = DEFAULT_TIMEOUT_SECONDS,
        name: str = "kubernetes",
    ):
        """
        Initialize the caller.

        Args:
            transport: Object with an async ``send(HttpRequest)`` method
            retry_config: Backoff schedule and attempt budget
            breaker_config: Circuit breaker thresholds
            timeout_seconds: Deadline for each attempt (None disables)
            name: Circuit name used in logs and metrics
        """
        self.circuit_name = name
        self.retry_config = retry_config or RetryConfig()
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        self._breaker = CircuitBreaker(
            name, breaker_config, on_state_change=self._on_state_change
        )
        self._stats = StatsTracker(self._breaker.peek_state)
        super().__init__()
        metrics.update_circuit_state(name, CircuitState.CLOSED.value)

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    @property
    def transport(self) -> Transport:
        return self._transport

    def stats(self) -> StatsSnapshot:
        return self._stats.snapshot()

    def _on_state_change(self, old: CircuitState, new: CircuitState) -> None:
        metrics.update_circuit_state(self.circuit_name, new.value)

    async def execute(self, request: HttpRequest) -> HttpResponse:
        """
        Send a request with circuit breaker protection and retry.

        Returns:
            The transport response, whatever its HTTP status

        Raises:
            CircuitOpenError: Circuit is open; the transport was not called
            TimeoutError: Last attempt exceeded its deadline
            Exception: Last transport error once retries are exhausted, or
                the first non-retryable error
        """
        try:
            return await self._breaker.call(lambda: self._tracked_call(request))
        except CircuitOpenError as e:
            if e.circuit_name != self.circuit_name:
                raise
            self._stats.on_rejected()
            metrics.record_request(request.method, "rejected")
            self._log(
                logging.WARNING,
                "Circuit breaker open, rejecting request",
                http_method=request.method,
                retry_after_seconds=round(e.retry_after, 3),
            )
            raise

    async def _tracked_call(self, request: HttpRequest) -> HttpResponse:
        self._stats.on_start()
        started = time.monotonic()
        try:
            response = await self._send_with_retry(request)
        except TimeoutError:
            self._stats.on_timeout()
            metrics.record_request(request.method, "timeout")
            raise
        except (Exception, asyncio.CancelledError):
            self._stats.on_failure()
            metrics.record_request(request.method, "failure")
            raise

        elapsed = time.monotonic() - started
        self._stats.on_success(elapsed * 1000)
        metrics.record_request(request.method, "success", elapsed)
        return response

    async def _send_with_retry(self, request: HttpRequest) -> HttpResponse:
        max_attempts = max(1, self.retry_config.max_attempts)
        last_error: Optional[BaseException] = None

        for attempt in range(1, max_attempts + 1):
            try:
                return await asyncio.wait_for(
                    self._transport.send(request), timeout=self.timeout_seconds
                )
            except asyncio.TimeoutError as e:
                last_error = TimeoutError(
                    f"{request.method} {request.uri} timed out after "
                    f"{self.timeout_seconds}s",
                    timeout_seconds=self.timeout_seconds,
                    cause=e,
                )
            except Exception as e:
                last_error = e

            if attempt >= max_attempts or not is_retryable_error(last_error):
                self._log_exception(
                    last_error,
                    "Request failed",
                    level=logging.WARNING,
                    http_method=request.method,
                    attempt=attempt,
                    max_attempts=max_attempts,
                )
                raise last_error

            delay = self.retry_config.get_delay(attempt)
            metrics.record_retry(request.method)
            self._log(
                logging.INFO,
                "Request attempt failed, retrying",
                http_method=request.method,
                attempt=attempt,
                max_attempts=max_attempts,
                delay_seconds=round(delay, 3),
                error_type=type(last_error).__name__,
            )
            if request.method == "POST":
                self._log(
                    logging.WARNING,
                    "Retrying non-idempotent request; the API may create a duplicate",
                    http_method=request.method,
                    attempt=attempt + 1,
                )
            await asyncio.sleep(delay)

        # Unreachable: the loop either returns or raises
        raise last_error  # pragma: no cover
