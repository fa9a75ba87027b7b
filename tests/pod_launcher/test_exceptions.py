"""Tests for the error hierarchy and classification helpers."""

import asyncio

import pytest

from pod_launcher.common.exceptions import (
    CircuitOpenError,
    ConfigurationError,
    ErrorCategory,
    JobCreationError,
    LauncherError,
    PermanentError,
    TemplateBindingError,
    TimeoutError,
    TransportError,
    classify_exception,
    is_retryable_error,
)


class TestLauncherError:
    def test_str_includes_cause(self):
        cause = ConnectionResetError("connection reset by peer")
        error = TransportError("DELETE failed", cause=cause)

        assert str(error) == "DELETE failed | Caused by: connection reset by peer"
        assert error.cause is cause

    def test_categories(self):
        assert TransportError("x").category == ErrorCategory.TRANSIENT
        assert TimeoutError("x", timeout_seconds=10.0).category == ErrorCategory.TRANSIENT
        assert ConfigurationError("x").category == ErrorCategory.PERMANENT
        assert CircuitOpenError("kubernetes", 30.0).category == ErrorCategory.CIRCUIT_OPEN
        assert LauncherError("x").category == ErrorCategory.UNKNOWN

    def test_is_retryable(self):
        assert TransportError("x").is_retryable is True
        assert LauncherError("x").is_retryable is True
        assert ConfigurationError("x").is_retryable is False
        assert CircuitOpenError("kubernetes", 1.0).is_retryable is False

    def test_binding_error_lists_missing_sorted(self):
        error = TemplateBindingError(["zone", "api_uri"])

        assert error.missing_placeholders == frozenset({"zone", "api_uri"})
        assert str(error) == "Unbound template placeholders: api_uri, zone"
        assert isinstance(error, PermanentError)

    def test_job_error_carries_response(self):
        error = JobCreationError("Failed to create pod: {}", status_code=409, body={})

        assert error.status_code == 409
        assert error.body == {}
        assert error.context == {"status_code": 409}

    def test_timeout_error_does_not_shadow_asyncio(self):
        assert not issubclass(asyncio.TimeoutError, TimeoutError)


class TestClassifyException:
    def test_launcher_error_keeps_category(self):
        assert classify_exception(ConfigurationError("bad")) == ErrorCategory.PERMANENT

    def test_connection_errors_are_transient(self):
        assert classify_exception(ConnectionRefusedError("connection refused")) == (
            ErrorCategory.TRANSIENT
        )
        assert classify_exception(OSError("Broken pipe")) == ErrorCategory.TRANSIENT

    def test_timeouts_are_transient(self):
        assert classify_exception(asyncio.TimeoutError()) == ErrorCategory.TRANSIENT

    def test_auth_and_forbidden(self):
        assert classify_exception(Exception("401 Unauthorized")) == ErrorCategory.AUTH
        assert classify_exception(Exception("403 Forbidden")) == ErrorCategory.PERMANENT

    def test_unknown(self):
        assert classify_exception(ValueError("lol")) == ErrorCategory.UNKNOWN

    def test_is_retryable_error(self):
        assert is_retryable_error(Exception("error")) is True
        assert is_retryable_error(TransportError("x")) is True
        assert is_retryable_error(Exception("401 Unauthorized")) is False
        assert is_retryable_error(CircuitOpenError("kubernetes", 1.0)) is False
