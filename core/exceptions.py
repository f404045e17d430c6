"""
Custom exceptions for the harvest pipeline with structured error context.

Each exception carries a context dictionary naming the unit of work that
failed (group, query, batch index, ...) so that log lines stay useful
after the error has been degraded to "produced less data".

Exception Hierarchy:
    HarvestException (base)
    ├── RetryableError
    │   ├── RateLimited
    │   ├── NetworkError
    │   └── StoreWriteError
    ├── NonRetryableError
    │   ├── AuthError
    │   ├── ConfigurationError
    │   └── StoreReadError
    ├── SourceFetchError
    ├── NormalizationSkip
    └── BudgetExhausted
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone


class HarvestException(Exception):
    """
    Base exception for all harvest-related errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (source, unit of work, ...)
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

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

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
# Retry Strategy Markers
# ============================================================================

class RetryableError(HarvestException):
    """
    Marker for errors that should trigger retry logic.

    Use this for transient errors like:
    - Rate limiting (HTTP 429)
    - Network timeouts
    - Store write rejections
    """
    pass


class NonRetryableError(HarvestException):
    """
    Marker for errors that should NOT trigger retry logic.

    Use this for permanent errors like:
    - Missing or rejected credentials
    - Misconfigured store or pipeline
    """
    pass


# ============================================================================
# Fetch Errors
# ============================================================================

class RateLimited(RetryableError):
    """Rate limiting (HTTP 429 or "too many requests" payload), retried with backoff."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        retry_after: Optional[float] = None
    ):
        super().__init__(message, context, original_exception)
        self.retry_after = retry_after
        if retry_after:
            self.context["retry_after"] = retry_after


class NetworkError(RetryableError):
    """Transport failures and timeouts."""
    pass


class SourceFetchError(HarvestException):
    """
    Non-2xx, non-429 response (or unparseable body) for one page/group.

    Context should include:
        - url: The endpoint that failed
        - status_code: HTTP status code (if applicable)
        - response_body: Response body (truncated)
    """
    pass


class AuthError(NonRetryableError):
    """Credentials missing, or the token exchange was rejected. Fatal for a run."""
    pass


class ConfigurationError(NonRetryableError):
    """Store or pipeline configuration is missing or invalid. Fatal for a run."""
    pass


# ============================================================================
# Store Errors
# ============================================================================

class StoreWriteError(RetryableError):
    """
    The keyed store rejected an upsert batch.

    Context should include:
        - table: Target table
        - conflict_key: Conflict target column(s)
        - status_code: HTTP status (REST stores)
    """
    pass


class StoreReadError(NonRetryableError):
    """
    The keyed store could not answer a read (graded-harvest targets).

    Fatal when the run cannot learn what to harvest; a failed read for a
    single set only skips that set.
    """
    pass


# ============================================================================
# Planned, non-error outcomes
# ============================================================================

class NormalizationSkip(HarvestException):
    """A record failed a validation rule and is excluded from its batch."""

    def __init__(self, reason: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(reason, context)
        self.reason = reason


class BudgetExhausted(HarvestException):
    """The external call budget is spent; the run stops and reports where to resume."""

    def __init__(
        self,
        calls_made: int,
        call_budget: int,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(f"API call limit reached ({calls_made}/{call_budget})", context)
        self.calls_made = calls_made
        self.call_budget = call_budget
