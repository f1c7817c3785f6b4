"""
Structured error types for linkspine.

Every failure a reconciliation run can meet is one of three kinds, and the
kind decides what happens next:

- **Validation:** one record is unusable (missing key, unknown milestone,
  invalid select choice). The record is skipped, the run continues.
- **Transient:** the store is rate limiting or a call timed out. The batch is
  retried with backoff, up to a bounded count.
- **Fatal:** the store cannot be read at all, credentials are rejected or
  required configuration is absent. The run aborts before any write.

Manifesto:
    - **Typed hierarchy:** one subclass per failure kind, never bare Exception
    - **Explicit retry semantics:** each error knows if it is retryable
    - **Retry hints travel with the error:** ``retry_after`` from a 429
    - **Context for logging:** table, record id and HTTP details ride along

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────┐
        │                      LinkSpineError                          │
        │  (category, retryable, retry_after, context, cause)          │
        ├─────────────────────────────────────────────────────────────┤
        │  TransientError       SourceError        ValidationError     │
        │  (retryable=True)     (SOURCE)           (VALIDATION)        │
        │       │                    │                  │              │
        │  NetworkError         SourceNotFound     MalformedKeyError   │
        │  TimeoutError                            InvalidChoiceError  │
        │  RateLimitError                                              │
        │                                                              │
        │  ConfigError          AuthError          RunAbortedError     │
        │  (CONFIG, fatal)      (AUTH, fatal)      (RUN, fatal)        │
        │       │                    │                                 │
        │  MissingConfig        Authentication                         │
        │  InvalidConfig        Authorization                          │
        └─────────────────────────────────────────────────────────────┘

Examples:
    >>> error = RateLimitError(retry_after=30)
    >>> error.retryable
    True
    >>> get_retry_after(error)
    30

    >>> error = MalformedKeyError("Build Version (Unified)", 36.1)
    >>> error.retryable
    False

Tags:
    error-handling, exception-hierarchy, retry-logic, linkspine
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    NETWORK = "NETWORK"
    SOURCE = "SOURCE"
    VALIDATION = "VALIDATION"
    CONFIG = "CONFIG"
    AUTH = "AUTH"
    RUN = "RUN"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """
    Structured context attached to an error.

    Attributes:
        table: Table the operation targeted
        record_id: Record being processed, when the error is record-level
        operation: Repository or run operation name (``select``, ``update_many``)
        url: URL that was being accessed
        http_status: HTTP status code if applicable
        metadata: Additional key-value pairs
    """

    table: str | None = None
    record_id: str | None = None
    operation: str | None = None
    url: str | None = None
    http_status: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Set attributes plus metadata, flattened for log events."""
        known = {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name != "metadata" and getattr(self, f.name) is not None
        }
        return {**known, **self.metadata}


class LinkSpineError(Exception):
    """
    Base exception for all linkspine errors.

    Subclasses set ``default_category`` and ``default_retryable`` so callers
    rarely pass them explicitly.

    Examples:
        >>> error = LinkSpineError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>

        >>> error = LinkSpineError("Fetch failed").with_context(table="Builds")
        >>> error.context.table
        'Builds'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        retry_after: float | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.retry_after = retry_after
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> LinkSpineError:
        """
        Add context to this error (fluent API).

        Usage:
            raise SourceError("Failed").with_context(table="Builds", http_status=500)
        """
        known = {f.name for f in fields(self.context)} - {"metadata"}
        for key, value in kwargs.items():
            if key in known:
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Serializable form for ``--json`` output and log events."""
        optional = {
            "retry_after": self.retry_after,
            "context": self.context.to_dict() or None,
            "cause": str(self.cause) if self.cause is not None else None,
        }
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
            **{key: value for key, value in optional.items() if value is not None},
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# ── Transient errors (retried) ──────────────────────────────────────


class TransientError(LinkSpineError):
    """
    Temporary error that may succeed on retry.

    Raised by repositories for rate limiting, timeouts and 5xx responses. The
    dispatcher retries the same batch after a backoff and honours
    ``retry_after`` when the store supplied one.
    """

    default_category = ErrorCategory.NETWORK
    default_retryable = True


class NetworkError(TransientError):
    """Network-related transient error."""


class TimeoutError(TransientError):
    """Repository call timed out."""


class RateLimitError(TransientError):
    """Rate limit exceeded. ``retry_after`` is the store's hint, if any."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        *,
        retry_after: float | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, retry_after=retry_after, **kwargs)


# ── Source errors ─────────────────────────────────────────────────────


class SourceError(LinkSpineError):
    """Error reported by the record store. Not retryable by default."""

    default_category = ErrorCategory.SOURCE
    default_retryable = False


class SourceNotFoundError(SourceError):
    """Table, view or record not found."""


# ── Validation errors ─────────────────────────────────────────────────


class ValidationError(LinkSpineError):
    """
    Record-level data problem.

    Never retryable. Synchronizers catch it per record and turn it into a
    skip reason; it never aborts a batch.
    """

    default_category = ErrorCategory.VALIDATION
    default_retryable = False

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        constraint: str | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value
        self.constraint = constraint

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        if self.value is not None:
            result["value"] = repr(self.value)
        if self.constraint:
            result["constraint"] = self.constraint
        return result


class MalformedKeyError(ValidationError):
    """A natural-key cell holds something other than a string."""

    def __init__(self, field: str | None, value: Any, **kwargs: Any):
        super().__init__(
            f"Malformed key value {value!r} (expected text)",
            field=field,
            value=value,
            constraint="text",
            **kwargs,
        )


class InvalidChoiceError(ValidationError):
    """A value is not one of a single-select field's choices."""

    def __init__(self, field: str, value: Any, **kwargs: Any):
        super().__init__(
            f"{value!r} is not a choice of select field {field!r}",
            field=field,
            value=value,
            constraint="choice",
            **kwargs,
        )


# ── Configuration errors (fatal) ────────────────────────────────────


class ConfigError(LinkSpineError):
    """Configuration error. Never retryable."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class MissingConfigError(ConfigError):
    """Required configuration is missing."""

    def __init__(self, key: str, message: str | None = None):
        self.key = key
        super().__init__(message or f"Missing required configuration: {key}")


class InvalidConfigError(ConfigError):
    """Configuration value is invalid."""

    def __init__(self, key: str, value: Any, message: str | None = None):
        self.key = key
        self.value = value
        super().__init__(message or f"Invalid configuration for {key}: {value!r}")


# ── Auth errors (fatal) ─────────────────────────────────────────────


class AuthError(LinkSpineError):
    """Authentication or authorization error."""

    default_category = ErrorCategory.AUTH
    default_retryable = False


class AuthenticationError(AuthError):
    """Credentials were rejected."""


class AuthorizationError(AuthError):
    """Not authorized to perform action."""


# ── Run errors ────────────────────────────────────────────────────────


class RunAbortedError(LinkSpineError):
    """The run cannot produce meaningful output (e.g. source table unreadable)."""

    default_category = ErrorCategory.RUN
    default_retryable = False


# ── Utility functions ─────────────────────────────────────────────────


def is_retryable(error: Exception) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, LinkSpineError):
        return error.retryable
    return False


def get_retry_after(error: Exception) -> float | None:
    """Get the retry-after hint carried by an error, if any."""
    if isinstance(error, LinkSpineError):
        return error.retry_after
    return None


def is_fatal(error: Exception) -> bool:
    """True for errors after which no further writes should be issued."""
    return isinstance(error, ConfigError | AuthError | RunAbortedError)
