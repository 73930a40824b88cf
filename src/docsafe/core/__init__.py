"""Core primitives: errors, integrity, records, storage, backups, settings, logging."""

from docsafe.core.backups import BackupStore, PruneReport, VerificationReport
from docsafe.core.errors import (
    AuthenticationError,
    ClassifiedError,
    DocsafeError,
    ErrorCategory,
    NetworkError,
    RequestTimeoutError,
    ServerError,
    SessionExpiredError,
    StorageError,
    StorageQuotaError,
    ValidationError,
    classify_error,
)
from docsafe.core.integrity import (
    IntegrityResult,
    IntegrityStatus,
    attempt_repair,
    compute_checksum,
    verify,
    verify_and_repair,
    verify_checksum,
)
from docsafe.core.logging import configure_logging, get_logger
from docsafe.core.models import BackupKey, BackupRecord, RecoveredDocument, RecoveryMetrics
from docsafe.core.preferences import PreferenceStore
from docsafe.core.settings import DocsafeSettings, get_settings
from docsafe.core.storage import InMemoryStorage, KeyValueStorage, SqliteStorage

__all__ = [
    "AuthenticationError",
    "BackupKey",
    "BackupRecord",
    "BackupStore",
    "ClassifiedError",
    "DocsafeError",
    "DocsafeSettings",
    "ErrorCategory",
    "InMemoryStorage",
    "IntegrityResult",
    "IntegrityStatus",
    "KeyValueStorage",
    "NetworkError",
    "PreferenceStore",
    "PruneReport",
    "RecoveredDocument",
    "RecoveryMetrics",
    "RequestTimeoutError",
    "ServerError",
    "SessionExpiredError",
    "SqliteStorage",
    "StorageError",
    "StorageQuotaError",
    "ValidationError",
    "VerificationReport",
    "attempt_repair",
    "classify_error",
    "compute_checksum",
    "configure_logging",
    "get_logger",
    "get_settings",
    "verify",
    "verify_and_repair",
    "verify_checksum",
]
