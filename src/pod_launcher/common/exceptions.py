"""
Exception types and error classification for pod_launcher.

Provides:
- ErrorCategory enum for retry decisions
- Typed exception hierarchy for launcher errors
- Error classification utilities
"""

from enum import Enum
from typing import Any, FrozenSet, Iterable, Optional


class ErrorCategory(Enum):
    """
    Classification of error types for handling decisions.

    Categories:
        TRANSIENT: Temporary failures that should retry with backoff
                   (e.g., connection resets, per-attempt timeouts)
        AUTH: Authentication failures (e.g., 401, bad service-account token)
        PERMANENT: Non-retriable failures that won't succeed on retry
                   (e.g., template binding errors, rejected pod specs)
        CIRCUIT_OPEN: Circuit breaker is open, rejecting fast without attempting
        UNKNOWN: Unclassified errors, may retry conservatively
    """

    TRANSIENT = "transient"
    AUTH = "auth"
    PERMANENT = "permanent"
    CIRCUIT_OPEN = "circuit_open"
    UNKNOWN = "unknown"


class LauncherError(Exception):
    """
    Base exception for all launcher errors.

    Attributes:
        message: Human-readable error description
        category: Error classification for retry decisions
        cause: Original exception if wrapping
        context: Additional context dict for debugging
    """

    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(
        self,
        message: str,
        cause: Optional[Exception] = None,
        context: Optional[dict] = None,
    ):
        self.message = message
        self.cause = cause
        self.context = context or {}
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        """Whether this error should trigger a retry."""
        return self.category in (ErrorCategory.TRANSIENT, ErrorCategory.UNKNOWN)

    def __str__(self) -> str:
        parts = [self.message]
        if self.cause:
            parts.append(f"Caused by: {self.cause}")
        return " | ".join(parts)


# =============================================================================
# Network Errors (Transient)
# =============================================================================


class TransientError(LauncherError):
    """Base class for transient/retriable errors."""

    category = ErrorCategory.TRANSIENT


class TransportError(TransientError):
    """Network-level failure talking to the cluster API (DNS, reset, refused)."""

    pass


class TimeoutError(TransientError):
    """A single attempt exceeded its deadline."""

    def __init__(
        self,
        message: str,
        timeout_seconds: Optional[float] = None,
        cause: Optional[Exception] = None,
        context: Optional[dict] = None,
    ):
        super().__init__(message, cause, context)
        self.timeout_seconds = timeout_seconds


# =============================================================================
# Permanent Errors (Don't Retry)
# =============================================================================


class PermanentError(LauncherError):
    """Base class for permanent/non-retriable errors."""

    category = ErrorCategory.PERMANENT


class ConfigurationError(PermanentError):
    """Invalid or incomplete configuration."""

    pass


class TemplateError(PermanentError):
    """Base class for template compilation failures."""

    pass


class TemplateBindingError(TemplateError):
    """Template references placeholders that have no binding."""

    def __init__(self, missing: Iterable[str]):
        self.missing_placeholders: FrozenSet[str] = frozenset(missing)
        names = ", ".join(sorted(self.missing_placeholders))
        super().__init__(
            f"Unbound template placeholders: {names}",
            context={"missing_placeholders": sorted(self.missing_placeholders)},
        )


class TemplateRenderError(TemplateError):
    """Rendered template is not a valid job specification document."""

    pass


class JobError(PermanentError):
    """Cluster API answered, but not with the expected status."""

    def __init__(self, message: str, status_code: int, body: Any = None):
        super().__init__(message, context={"status_code": status_code})
        self.status_code = status_code
        self.body = body


class JobCreationError(JobError):
    """Pod creation was rejected by the cluster API."""

    pass


class JobDeletionError(JobError):
    """Pod deletion was rejected by the cluster API."""

    pass


# =============================================================================
# Circuit Breaker Errors
# =============================================================================


class CircuitOpenError(LauncherError):
    """Circuit breaker is open, rejecting requests."""

    category = ErrorCategory.CIRCUIT_OPEN

    def __init__(
        self,
        circuit_name: str,
        retry_after: float,
        cause: Optional[Exception] = None,
    ):
        message = f"Circuit '{circuit_name}' is open"
        super().__init__(message, cause, {"circuit_name": circuit_name})
        self.circuit_name = circuit_name
        self.retry_after = retry_after


# =============================================================================
# Error Classification Utilities
# =============================================================================


def classify_exception(exc: BaseException) -> ErrorCategory:
    """
    Classify an exception into error category.

    Args:
        exc: Exception to classify

    Returns:
        Appropriate ErrorCategory
    """
    # Already classified
    if isinstance(exc, LauncherError):
        return exc.category

    exc_type = type(exc).__name__.lower()
    exc_str = str(exc).lower()

    # Connection errors
    connection_markers = (
        "connectionerror",
        "connection refused",
        "connection reset",
        "connection aborted",
        "no route to host",
        "network unreachable",
        "name resolution",
        "dns",
        "socket",
        "broken pipe",
        "clientoserror",
        "serverdisconnected",
    )
    if any(m in exc_type or m in exc_str for m in connection_markers):
        return ErrorCategory.TRANSIENT

    if "timeout" in exc_type or "timeout" in exc_str:
        return ErrorCategory.TRANSIENT

    auth_markers = ("401", "unauthorized", "authentication", "invalid token")
    if any(m in exc_str for m in auth_markers):
        return ErrorCategory.AUTH

    if "403" in exc_str or "forbidden" in exc_str or "404" in exc_str:
        return ErrorCategory.PERMANENT

    return ErrorCategory.UNKNOWN


def is_retryable_error(exc: BaseException) -> bool:
    """Whether an exception should be retried by the call layer."""
    return classify_exception(exc) in (ErrorCategory.TRANSIENT, ErrorCategory.UNKNOWN)
