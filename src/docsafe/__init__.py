"""
docsafe - resilient local-first persistence and recovery for a document editor.

Protects unsaved editorial work against network failure, storage
exhaustion, corrupted records and expired sessions:

- docsafe.core: integrity checksums, backup store, storage backends, settings
- docsafe.execution: circuit breaker, retry with backoff, timers
- docsafe.recovery: document and session recovery services
- docsafe.autosave: debounced autosave scheduler with offline tracking
"""

__version__ = "0.3.0"

from docsafe.autosave import AutosaveScheduler, AutosaveState, ConnectivityMonitor, SaveStatus
from docsafe.container import DocsafeContainer, get_container
from docsafe.core import (
    BackupKey,
    BackupRecord,
    BackupStore,
    DocsafeError,
    DocsafeSettings,
    ErrorCategory,
    InMemoryStorage,
    SqliteStorage,
    classify_error,
    get_settings,
)
from docsafe.execution import CircuitBreaker, CircuitOpenError, CircuitState, RetryPolicy, with_retry
from docsafe.recovery import (
    EnhancedRecoveryService,
    RecoveryService,
    SessionRecoveryResult,
    SessionRecoveryService,
)

__all__ = [
    "__version__",
    "AutosaveScheduler",
    "AutosaveState",
    "BackupKey",
    "BackupRecord",
    "BackupStore",
    "CircuitBreaker",
    "CircuitOpenError",
    "CircuitState",
    "ConnectivityMonitor",
    "DocsafeContainer",
    "DocsafeError",
    "DocsafeSettings",
    "EnhancedRecoveryService",
    "ErrorCategory",
    "InMemoryStorage",
    "RecoveryService",
    "RetryPolicy",
    "SaveStatus",
    "SessionRecoveryResult",
    "SessionRecoveryService",
    "SqliteStorage",
    "classify_error",
    "get_container",
    "get_settings",
    "with_retry",
]
