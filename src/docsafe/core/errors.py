"""
Structured error types and error classification for docsafe.

Every failure that reaches the persistence layer is classified exactly once
into an :class:`ErrorCategory`, and the category drives policy: whether a
backup-based recovery is attempted, whether a save is retried, or whether a
session refresh is started.

Manifesto:
    - **Classify at the boundary:** One category per failure, decided once
    - **Typed hierarchy:** Our own errors carry category and retry semantics
    - **Foreign errors welcome:** Builtins, HTTP-ish errors and plain messages
      are classified by status code, type and keywords
    - **Error chaining:** Wrapped errors keep the original as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                        DocsafeError                              │
        │  (category, retryable, retry_after, context, cause)             │
        ├─────────────────────────────────────────────────────────────────┤
        │  TransientError      StorageError           AuthError           │
        │  (retryable=True)    (STORAGE)              (AUTHENTICATION)    │
        │       │                   │                       │             │
        │  NetworkError        StorageQuotaError      AuthenticationError │
        │  RequestTimeoutError StorageCorruptionError SessionExpiredError │
        │  ServerError         SerializationError                         │
        │                                                                  │
        │  ValidationError     ConfigError                                │
        │  (VALIDATION)        (UNKNOWN)                                  │
        └─────────────────────────────────────────────────────────────────┘

        classify_error(error)
            typed category → HTTP status → builtin type → keywords → UNKNOWN

Policy:
    - NETWORK / SERVER / TIMEOUT / STORAGE: backup recovery
    - NETWORK / TIMEOUT: autosave retry as well
    - AUTHENTICATION: session recovery only
    - VALIDATION / UNKNOWN: surfaced, no automatic recovery

Tags:
    error-handling, classification, retry-logic, docsafe

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

import asyncio
import errno
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """
    Error taxonomy used for recovery routing.

    Attributes:
        NETWORK: Connectivity lost, request could not be delivered
        STORAGE: Local storage quota exhausted or data corrupted
        SERVER: Remote side failed (5xx, rate limit, circuit open)
        TIMEOUT: Operation took too long
        AUTHENTICATION: Session or token invalid, expired or refused
        VALIDATION: Rejected input, never retried
        UNKNOWN: Anything unclassified
    """

    NETWORK = "NETWORK"
    STORAGE = "STORAGE"
    SERVER = "SERVER"
    TIMEOUT = "TIMEOUT"
    AUTHENTICATION = "AUTHENTICATION"
    VALIDATION = "VALIDATION"
    UNKNOWN = "UNKNOWN"


# Categories eligible for backup-based recovery and autosave retry
BACKUP_RECOVERABLE_CATEGORIES = frozenset(
    {
        ErrorCategory.NETWORK,
        ErrorCategory.STORAGE,
        ErrorCategory.SERVER,
        ErrorCategory.TIMEOUT,
    }
)

# Categories a save may be retried on
TRANSIENT_SAVE_CATEGORIES = frozenset({ErrorCategory.NETWORK, ErrorCategory.TIMEOUT})


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Only set fields are emitted by :meth:`to_dict`, so the dict can be passed
    straight into a structlog call.

    Attributes:
        document_id: Document the failing operation worked on
        role: Editor role when no document id exists yet
        operation: Logical operation name (``"save"``, ``"backup"``, ...)
        key: Storage key involved
        http_status: HTTP status code if the failure came from a response
        metadata: Additional key-value pairs
    """

    document_id: str | None = None
    role: str | None = None
    operation: str | None = None
    key: str | None = None
    http_status: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for name in ["document_id", "role", "operation", "key", "http_status"]:
            value = getattr(self, name)
            if value is not None:
                result[name] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class DocsafeError(Exception):
    """
    Base exception for all docsafe errors.

    Subclasses set ``default_category`` and ``default_retryable``; both can be
    overridden per instance.

    Examples:
        >>> error = DocsafeError("Backup write failed", category=ErrorCategory.STORAGE)
        >>> error.with_context(document_id="doc-1", operation="backup")
        DocsafeError('Backup write failed', category=STORAGE)
        >>> error.to_dict()["context"]
        {'document_id': 'doc-1', 'operation': 'backup'}
    """

    default_category: ErrorCategory = ErrorCategory.UNKNOWN
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

    def with_context(self, **kwargs: Any) -> DocsafeError:
        """Add context to this error (fluent API)."""
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# TRANSIENT ERRORS (Retryable)
# =============================================================================


class TransientError(DocsafeError):
    """Temporary failure that may succeed on retry."""

    default_category = ErrorCategory.NETWORK
    default_retryable = True


class NetworkError(TransientError):
    """Request could not reach the remote store."""

    default_category = ErrorCategory.NETWORK


class RequestTimeoutError(TransientError):
    """Remote call did not complete in time."""

    default_category = ErrorCategory.TIMEOUT


class ServerError(TransientError):
    """Remote store answered with a server-side failure."""

    default_category = ErrorCategory.SERVER

    def __init__(self, message: str, *, status: int | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.status = status
        if status is not None:
            self.context.http_status = status


# =============================================================================
# STORAGE ERRORS
# =============================================================================


class StorageError(DocsafeError):
    """Local key-value storage failure."""

    default_category = ErrorCategory.STORAGE
    default_retryable = False


class StorageQuotaError(StorageError):
    """Storage medium refused a write because capacity is exhausted."""


class StorageCorruptionError(StorageError):
    """Stored record failed its integrity check or could not be decoded."""


class SerializationError(StorageError):
    """Record could not be encoded for storage."""


# =============================================================================
# AUTH / VALIDATION / CONFIG
# =============================================================================


class AuthError(DocsafeError):
    """Authentication or authorization failure."""

    default_category = ErrorCategory.AUTHENTICATION
    default_retryable = False


class AuthenticationError(AuthError):
    """Credentials rejected."""


class SessionExpiredError(AuthError):
    """Session or token expired."""


class ValidationError(DocsafeError):
    """Input rejected; retrying will not help."""

    default_category = ErrorCategory.VALIDATION
    default_retryable = False


class ConfigError(DocsafeError):
    """Invalid configuration."""

    default_category = ErrorCategory.UNKNOWN
    default_retryable = False


# =============================================================================
# CLASSIFICATION
# =============================================================================


@dataclass(frozen=True)
class ClassifiedError:
    """Outcome of :func:`classify_error`.

    Attributes:
        category: Routing category
        message: Short user-facing message
        technical_message: ``"<ExceptionType>: <message>"`` for logs
        recoverable: Whether any automatic recovery path exists
        suggested_action: What the user can do about it
    """

    category: ErrorCategory
    message: str
    technical_message: str
    recoverable: bool
    suggested_action: str | None = None


_KEYWORDS: list[tuple[ErrorCategory, tuple[str, ...]]] = [
    (
        ErrorCategory.AUTHENTICATION,
        ("unauthorized", "unauthenticated", "authentication", "authorization", "auth error",
         "auth failed", "jwt", "token", "session", "credential", "login"),
    ),
    (ErrorCategory.TIMEOUT, ("timeout", "timed out", "deadline", "took too long")),
    (ErrorCategory.NETWORK, ("network", "offline", "internet", "connection", "fetch")),
    (ErrorCategory.STORAGE, ("storage", "quota", "capacity", "disk full", "no space")),
    (
        ErrorCategory.SERVER,
        ("server", "service unavailable", "bad gateway", "rate limit",
         "too many requests", "database"),
    ),
    (ErrorCategory.VALIDATION, ("invalid", "validation", "required", "constraint", "malformed")),
]

# Keywords match at the start of a word only.
_KEYWORD_PATTERNS: list[tuple[ErrorCategory, re.Pattern[str]]] = [
    (category, re.compile(r"\b(?:" + "|".join(map(re.escape, keywords)) + ")"))
    for category, keywords in _KEYWORDS
]

_USER_MESSAGES: dict[ErrorCategory, tuple[str, str]] = {
    ErrorCategory.NETWORK: (
        "We're having trouble connecting to the server.",
        "Check your internet connection and try again.",
    ),
    ErrorCategory.STORAGE: (
        "There's not enough local storage space.",
        "Free up some space by clearing old drafts.",
    ),
    ErrorCategory.SERVER: (
        "There was a problem with our server.",
        "Please try again later.",
    ),
    ErrorCategory.TIMEOUT: (
        "The operation took too long to complete.",
        "Try again in a moment.",
    ),
    ErrorCategory.AUTHENTICATION: (
        "Your session may have expired.",
        "Please try logging in again.",
    ),
    ErrorCategory.VALIDATION: (
        "There's a problem with the information provided.",
        "Check the input and try again.",
    ),
    ErrorCategory.UNKNOWN: (
        "Something unexpected happened.",
        "Try again or contact support if the problem persists.",
    ),
}


def _error_message(error: object) -> str:
    if isinstance(error, DocsafeError):
        return error.message
    if isinstance(error, BaseException):
        return str(error)
    if isinstance(error, str):
        return error
    return "An unknown error occurred"


def _status_code(error: object) -> int | None:
    """Pull an HTTP status out of ``status``/``status_code``/``response.status_code``."""
    for attr in ("status", "status_code"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(error, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


def _category_from_status(status: int) -> ErrorCategory | None:
    if status in (401, 403):
        return ErrorCategory.AUTHENTICATION
    if status in (408, 504):
        return ErrorCategory.TIMEOUT
    if status == 429 or status >= 500:
        return ErrorCategory.SERVER
    if 400 <= status < 500:
        return ErrorCategory.VALIDATION
    return None


def _category_from_type(error: object) -> ErrorCategory | None:
    if isinstance(error, DocsafeError):
        return error.category
    if isinstance(error, (TimeoutError, asyncio.TimeoutError)):
        return ErrorCategory.TIMEOUT
    if isinstance(error, ConnectionError):
        return ErrorCategory.NETWORK
    if isinstance(error, OSError) and error.errno in (errno.ENOSPC, errno.EDQUOT):
        return ErrorCategory.STORAGE
    return None


def _category_from_keywords(message: str, context: str | None) -> ErrorCategory:
    lowered = message.lower()
    if context and ("auth" in context.lower() or "login" in context.lower()):
        return ErrorCategory.AUTHENTICATION
    for category, pattern in _KEYWORD_PATTERNS:
        if pattern.search(lowered):
            return category
    return ErrorCategory.UNKNOWN


def classify_error(error: object, context: str | None = None) -> ClassifiedError:
    """Classify any error (exception, message string, HTTP-ish object).

    Args:
        error: The failure to classify
        context: Free-form description of where it happened (``"save"``,
            ``"auth.refresh"``); an auth/login context implies AUTHENTICATION
            for otherwise untyped errors

    Returns:
        ClassifiedError with category, user message and recoverability
    """
    message = _error_message(error)
    technical = f"{type(error).__name__}: {message}" if isinstance(error, BaseException) else message

    category = None
    if isinstance(error, DocsafeError):
        category = error.category
    if category is None:
        status = _status_code(error)
        if status is not None:
            category = _category_from_status(status)
    if category is None:
        category = _category_from_type(error)
    if category is None:
        category = _category_from_keywords(message, context)

    user_message, action = _USER_MESSAGES[category]
    return ClassifiedError(
        category=category,
        message=user_message,
        technical_message=technical,
        recoverable=is_backup_recoverable(category) or is_session_recoverable(category),
        suggested_action=action,
    )


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def categorize_error(error: object, context: str | None = None) -> ErrorCategory:
    """Get the category of an error."""
    return classify_error(error, context).category


def is_retryable(error: Exception) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, DocsafeError):
        return error.retryable
    return isinstance(error, (ConnectionError, TimeoutError, asyncio.TimeoutError))


def is_transient_save_error(error: Exception) -> bool:
    """Retry predicate for saves: network, timeout and connection-class errors only."""
    return categorize_error(error) in TRANSIENT_SAVE_CATEGORIES


def is_backup_recoverable(category: ErrorCategory) -> bool:
    """Whether an error of ``category`` is eligible for backup-based recovery."""
    return category in BACKUP_RECOVERABLE_CATEGORIES


def is_session_recoverable(category: ErrorCategory) -> bool:
    """Whether an error of ``category`` is eligible for session recovery."""
    return category == ErrorCategory.AUTHENTICATION


__all__ = [
    # Category enum
    "ErrorCategory",
    "BACKUP_RECOVERABLE_CATEGORIES",
    "TRANSIENT_SAVE_CATEGORIES",
    # Context
    "ErrorContext",
    # Base
    "DocsafeError",
    # Transient
    "TransientError",
    "NetworkError",
    "RequestTimeoutError",
    "ServerError",
    # Storage
    "StorageError",
    "StorageQuotaError",
    "StorageCorruptionError",
    "SerializationError",
    # Auth / validation / config
    "AuthError",
    "AuthenticationError",
    "SessionExpiredError",
    "ValidationError",
    "ConfigError",
    # Classification
    "ClassifiedError",
    "classify_error",
    "categorize_error",
    "is_retryable",
    "is_transient_save_error",
    "is_backup_recoverable",
    "is_session_recoverable",
]
