"""
Lazy-initialised dependency container.

:class:`DocsafeContainer` owns the process-wide pieces (storage, backup
store, preferences, recovery metrics) and builds the per-item services
on request, wired to them and to :class:`DocsafeSettings`.

Usage::

    from docsafe.container import DocsafeContainer

    with DocsafeContainer() as c:
        recovery = c.recovery_service()
        recovery.initialize("doc-1", "Draft", "writer")

        autosave = c.autosave_scheduler(save_document, initial_content=text)
        session = c.session_recovery(auth_client, notify=show_toast)
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from docsafe.autosave.connectivity import ConnectivityMonitor, OnlineSignal
from docsafe.autosave.scheduler import AutosaveScheduler, SaveCallable
from docsafe.core.backups import BackupStore, PruneReport
from docsafe.core.logging import get_logger
from docsafe.core.preferences import PreferenceStore
from docsafe.core.settings import DocsafeSettings, get_settings
from docsafe.core.storage import KeyValueStorage, SqliteStorage
from docsafe.execution.circuit_breaker import CircuitBreaker
from docsafe.recovery.enhanced import EnhancedRecoveryService
from docsafe.recovery.metrics import DOCUMENT_METRICS_KEY, SESSION_METRICS_KEY, MetricsRecorder
from docsafe.recovery.service import RecoveryService
from docsafe.recovery.session import AuthClient, SessionRecoveryService

logger = get_logger(__name__)


class DocsafeContainer:
    """Lazy-initialised dependency container.

    Shared components are created on first property access and released
    via :meth:`close` (or the context-manager protocol). Services bound to
    one document are created fresh by the factory methods.
    """

    def __init__(
        self,
        settings: DocsafeSettings | None = None,
        *,
        storage: KeyValueStorage | None = None,
    ) -> None:
        self._settings = settings
        self._storage = storage
        self._owns_storage = storage is None
        self._backup_store: BackupStore | None = None
        self._preferences: PreferenceStore | None = None
        self._connectivity: ConnectivityMonitor | None = None

    # ── Properties (lazy) ────────────────────────────────────────

    @property
    def settings(self) -> DocsafeSettings:
        if self._settings is None:
            self._settings = get_settings()
        return self._settings

    @property
    def storage(self) -> KeyValueStorage:
        """Shared key-value store (SQLite at ``settings.database_path``)."""
        if self._storage is None:
            self._storage = SqliteStorage(self.settings.database_path)
        return self._storage

    @property
    def backup_store(self) -> BackupStore:
        if self._backup_store is None:
            self._backup_store = BackupStore(self.storage)
        return self._backup_store

    @property
    def preferences(self) -> PreferenceStore:
        if self._preferences is None:
            self._preferences = PreferenceStore(self.storage)
        return self._preferences

    @property
    def connectivity(self) -> ConnectivityMonitor:
        if self._connectivity is None:
            self._connectivity = ConnectivityMonitor()
        return self._connectivity

    def metrics_recorder(self, subsystem: str) -> MetricsRecorder:
        """Recorder for ``"documents"`` or ``"session"`` metrics."""
        keys = {"documents": DOCUMENT_METRICS_KEY, "session": SESSION_METRICS_KEY}
        return MetricsRecorder(self.storage, keys[subsystem])

    # ── Factories ────────────────────────────────────────────────

    def recovery_service(self, *, enhanced: bool = True) -> RecoveryService:
        cls = EnhancedRecoveryService if enhanced else RecoveryService
        return cls(
            self.backup_store,
            backup_interval=self.settings.backup_interval,
            max_recovery_attempts=self.settings.max_recovery_attempts,
            error_threshold=self.settings.consecutive_error_threshold,
            metrics=self.metrics_recorder("documents"),
        )

    def session_recovery(self, auth_client: AuthClient, **kwargs: Any) -> SessionRecoveryService:
        breaker = CircuitBreaker(
            name="auth",
            failure_threshold=self.settings.session_failure_threshold,
            reset_timeout=self.settings.session_reset_timeout,
            half_open_max_calls=1,
        )
        return SessionRecoveryService(
            auth_client,
            self.storage,
            max_retries=self.settings.session_max_retries,
            breaker=breaker,
            **kwargs,
        )

    def autosave_scheduler(
        self,
        save: SaveCallable,
        *,
        connectivity: OnlineSignal | None = None,
        **kwargs: Any,
    ) -> AutosaveScheduler:
        return AutosaveScheduler(
            save,
            preferences=self.preferences,
            connectivity=connectivity or self.connectivity,
            settings=self.settings,
            **kwargs,
        )

    def prune_backups(self) -> PruneReport:
        """Apply the configured retention policy to the backup store."""
        return self.backup_store.prune(
            max_age=timedelta(days=self.settings.backup_retention_days),
            max_records=self.settings.backup_max_records,
        )

    # ── Lifecycle ────────────────────────────────────────────────

    def close(self) -> None:
        """Release the storage this container opened."""
        if self._owns_storage and isinstance(self._storage, SqliteStorage):
            self._storage.close()
        self._storage = None if self._owns_storage else self._storage
        self._backup_store = None
        self._preferences = None
        logger.debug("container.closed")

    def __enter__(self) -> DocsafeContainer:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


# ── Global convenience ───────────────────────────────────────────────────

_global_container: DocsafeContainer | None = None


def get_container() -> DocsafeContainer:
    """Get (or create) a module-level :class:`DocsafeContainer`."""
    global _global_container
    if _global_container is None:
        _global_container = DocsafeContainer()
    return _global_container


__all__ = ["DocsafeContainer", "get_container"]
