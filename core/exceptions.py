"""
Custom exceptions for the DX import jobs with structured error context.

Every error raised by a job carries a message, a context dictionary
(file, reference id, status code, ...) and optionally the exception that
caused it, so that the console log and the failure log can show what
happened without a traceback.

Exception Hierarchy:
    DXImportError (base)
    ├── ConfigurationError
    ├── SourceError
    │   ├── SourceNotFoundError
    │   └── CSVParseError
    ├── ValidationRejection
    ├── SinkError
    │   ├── TransientSinkError (retryable)
    │   │   └── RateLimitSignal
    │   └── PermanentSinkError (non-retryable)
    ├── ResumeStateError
    └── RetryableError / NonRetryableError (mixins)
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone


class DXImportError(Exception):
    """
    Base exception for all import/export job errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (file, reference_id, status_code, ...)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.now(timezone.utc)

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        context = {k: v for k, v in self.context.items() if k != "error_timestamp"}
        if context:
            context_str = ", ".join(f"{k}={v}" for k, v in context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += (
                f" | Caused by: {type(self.original_exception).__name__}: "
                f"{str(self.original_exception)}"
            )

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Retry Strategy Mixins
# ============================================================================

class RetryableError(DXImportError):
    """
    Mixin for errors that should trigger retry logic.

    Use this for transient errors like:
    - Network timeouts and connection resets
    - Rate limiting (HTTP 429)
    - Server errors (HTTP 5xx) and request timeouts (HTTP 408)
    - Dropped database connections
    """
    pass


class NonRetryableError(DXImportError):
    """
    Mixin for errors that should NOT trigger retry logic.

    Use this for permanent errors like:
    - Client errors (HTTP 4xx other than 408/429)
    - Constraint or syntax errors from the database
    - Missing configuration or input
    """
    pass


# ============================================================================
# Configuration Errors
# ============================================================================

class ConfigurationError(NonRetryableError):
    """
    Raised when required configuration is missing or invalid.

    Fatal: the job aborts before performing any I/O.

    Context should include:
        - setting: Name of the missing/invalid setting
        - flag: Command-line flag that supplies it
        - env_var: Environment variable fallback
    """
    pass


# ============================================================================
# Source Errors
# ============================================================================

class SourceError(DXImportError):
    """Base exception for input reading failures."""
    pass


class SourceNotFoundError(NonRetryableError, SourceError):
    """
    Raised when the input file or directory does not exist.

    Context should include:
        - path: The path that was requested
    """
    pass


class CSVParseError(NonRetryableError, SourceError):
    """
    Raised when a CSV file is malformed (wrong column count, unterminated quote).

    Aborts processing of the whole file; partial success within one file
    is not supported.

    Context should include:
        - file_path: Path to the CSV file
    """
    pass


# ============================================================================
# Transformation Errors
# ============================================================================

class ValidationRejection(NonRetryableError):
    """
    A record that cannot become a payload (invalid value a field validator
    does not catch).

    Raised inside transformers only; the transformer turns it into a
    Rejection, so it never reaches the runner.

    Context should include:
        - field: Offending field
    """
    pass


# ============================================================================
# Sink Errors
# ============================================================================

class SinkError(DXImportError):
    """
    Base exception for delivery failures.

    Context should include:
        - target: URL or table that was written to
        - status_code: HTTP status code (if applicable)
        - response_body: Response body (truncated)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None
    ):
        super().__init__(message, context, original_exception)
        self.status_code = status_code
        self.response_body = response_body
        if status_code is not None:
            self.context["status_code"] = status_code


class TransientSinkError(RetryableError, SinkError):
    """HTTP 5xx/408, timeouts and connection errors that should be retried with backoff."""
    pass


class RateLimitSignal(TransientSinkError):
    """HTTP 429 from the sink; retried after the server-provided delay."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        status_code: Optional[int] = 429,
        response_body: Optional[str] = None,
        retry_after: Optional[float] = None
    ):
        super().__init__(message, context, original_exception, status_code, response_body)
        self.retry_after = retry_after  # Seconds to wait before retry
        if retry_after is not None:
            self.context["retry_after"] = retry_after


class PermanentSinkError(NonRetryableError, SinkError):
    """Client errors (HTTP 4xx other than 408/429) that should not be retried."""
    pass


# ============================================================================
# Resume State Errors
# ============================================================================

class ResumeStateError(DXImportError):
    """
    Raised when the resume marker file cannot be read or written.

    Context should include:
        - state_file: Path to the marker file
        - operation: read, write or clear
    """
    pass
