"""
Structured error types for pgmirror.

Every failure the adapter raises itself is a ``MirrorError`` carrying a
category, a retry hint, and an ``ErrorContext`` naming the collection,
operation and key involved. Errors raised by the asyncpg pool while a
statement executes are NOT wrapped: they reach the caller unmodified.

Manifesto:
    - **Typed Error Hierarchy:** Configuration, validation, decoding,
      storage and lifecycle failures are distinct types
    - **Fail Before I/O:** Validation errors are raised before any query
    - **Rich Context:** Errors carry the collection and key for logging
    - **Error Chaining:** Wrapped driver errors keep the original as cause

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────┐
        │                        MirrorError                           │
        │        (category, retryable, context, cause)                 │
        ├─────────────────────────────────────────────────────────────┤
        │                                                              │
        │  ConfigError          ValidationError       ParseError       │
        │  (CONFIG)             (VALIDATION)          (PARSE)          │
        │     │                     │                     │            │
        │  MissingConfigError   InvalidKeyKindError   ValueDecodeError │
        │  InvalidConfigError   InvalidValueKindError                  │
        │                                                              │
        │  StorageError         LifecycleError                         │
        │  (DATABASE)           (LIFECYCLE)                            │
        │     │                     │                                  │
        │  DatabaseConnectionError  NotReadyError                      │
        └─────────────────────────────────────────────────────────────┘

Examples:
    >>> error = InvalidKeyKindError(None)
    >>> error.category
    <ErrorCategory.VALIDATION: 'VALIDATION'>
    >>> error.with_context(collection="users").context.collection
    'users'

Guardrails:
    ❌ DON'T: Wrap asyncpg query errors, they propagate as raised
    ✅ DO: Wrap pool-open failures in DatabaseConnectionError with cause=

    ❌ DON'T: Raise for a missing key on fetch
    ✅ DO: Return the NOT_FOUND sentinel

Tags:
    error-handling, exception-hierarchy, error-context, pgmirror
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Error categories for classification and log routing."""

    # Infrastructure
    NETWORK = "NETWORK"
    DATABASE = "DATABASE"

    # Data
    PARSE = "PARSE"
    VALIDATION = "VALIDATION"

    # Configuration (never retryable)
    CONFIG = "CONFIG"

    # Adapter state
    LIFECYCLE = "LIFECYCLE"

    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Attributes:
        collection: Sanitized collection (table) name
        operation: Adapter operation that failed (``set``, ``fetch``, ...)
        key: Key involved, in its original form
        metadata: Additional key-value pairs
    """

    collection: str | None = None
    operation: str | None = None
    key: Any = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for name in ["collection", "operation", "key"]:
            value = getattr(self, name)
            if value is not None:
                result[name] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class MirrorError(Exception):
    """
    Base exception for all pgmirror errors.

    Subclasses set ``default_category`` and ``default_retryable`` so most
    call sites only pass a message.

    Examples:
        >>> error = MirrorError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.to_dict()["retryable"]
        False
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> MirrorError:
        """
        Add context to this error (fluent API).

        Usage:
            raise InvalidKeyKindError(key).with_context(collection="users")
        """
        for name, value in kwargs.items():
            if name != "metadata" and hasattr(self.context, name):
                setattr(self.context, name, value)
            else:
                self.context.metadata[name] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(MirrorError):
    """
    Configuration error.

    Raised at construction time. Never retryable - configuration must be fixed.
    """

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


# =============================================================================
# VALIDATION / PARSE ERRORS
# =============================================================================


class ValidationError(MirrorError):
    """Input rejected before any statement was sent."""

    default_category = ErrorCategory.VALIDATION
    default_retryable = False


class InvalidKeyKindError(ValidationError):
    """Key is empty, or not a string or a finite number."""

    def __init__(self, key: Any, message: str | None = None):
        self.key = key
        super().__init__(
            message or f"Keys must be non-empty strings or numbers, got {type(key).__name__}: {key!r}",
            context=ErrorContext(key=key),
        )


class InvalidValueKindError(ValidationError):
    """Value is neither a scalar nor a JSON-serializable structure."""

    def __init__(self, value: Any, message: str | None = None):
        self.value = value
        super().__init__(message or f"Unsupported value type: {type(value).__name__}")


class ParseError(MirrorError):
    """Stored data could not be parsed."""

    default_category = ErrorCategory.PARSE
    default_retryable = False


class ValueDecodeError(ParseError):
    """Stored text looked structured (leading ``[`` or ``{``) but is not valid JSON."""

    def __init__(self, text: str, *, cause: Exception | None = None):
        self.text = text
        preview = text if len(text) <= 40 else text[:37] + "..."
        super().__init__(f"Cannot decode stored value as JSON: {preview!r}", cause=cause)


# =============================================================================
# STORAGE ERRORS
# =============================================================================


class StorageError(MirrorError):
    """Failure raised by the adapter around the backing store."""

    default_category = ErrorCategory.DATABASE
    default_retryable = False


class DatabaseConnectionError(StorageError):
    """Connection pool could not be opened."""

    default_retryable = True


# =============================================================================
# LIFECYCLE ERRORS
# =============================================================================


class LifecycleError(MirrorError):
    """Operation issued in the wrong adapter state."""

    default_category = ErrorCategory.LIFECYCLE
    default_retryable = False


class NotReadyError(LifecycleError):
    """Operation issued before ``init`` completed."""

    pass


def categorize_error(error: Exception) -> ErrorCategory:
    """Get the category of an error, including raw driver errors."""
    if isinstance(error, MirrorError):
        return error.category
    if isinstance(error, (ConnectionError, OSError)):
        return ErrorCategory.NETWORK
    # asyncpg errors all derive from asyncpg.PostgresError / InterfaceError
    if type(error).__module__.startswith("asyncpg"):
        return ErrorCategory.DATABASE
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "MirrorError",
    # Config
    "ConfigError",
    "MissingConfigError",
    "InvalidConfigError",
    # Validation / parse
    "ValidationError",
    "InvalidKeyKindError",
    "InvalidValueKindError",
    "ParseError",
    "ValueDecodeError",
    # Storage
    "StorageError",
    "DatabaseConnectionError",
    # Lifecycle
    "LifecycleError",
    "NotReadyError",
    # Utilities
    "categorize_error",
]
