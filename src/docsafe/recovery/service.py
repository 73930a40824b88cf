"""
Document recovery service - scheduled backups and recovery from them.

One :class:`RecoveryService` instance protects one editable item at a time.
It is constructed once (usually by :class:`~docsafe.container.DocsafeContainer`)
and re-bound to a document with :meth:`RecoveryService.initialize`.

Manifesto:
    - **Back up often, write rarely:** identical content and too-recent
      writes are suppressed, unless errors are outstanding
    - **Recover only what helps:** network, storage, server and timeout
      failures fall back to the backup; authentication failures never do
    - **Never crash the editor:** storage failures end as ``False``

Architecture:
    ::

        initialize(id, title, role, on_backup_created)
        start_auto_backup(initial) ──► backup now ──► PeriodicTimer(backup_frequency)
                                                        │
        track_content(latest) ◄── editor               ▼
                                               create_backup(latest)
                                                 ├─ identical → skip
                                                 ├─ too recent & no errors → skip
                                                 └─ write ── quota? → reclaim own key → retry once

        handle_error_with_recovery(error, context)
            classify → track per-context count (self-heal at threshold)
            recoverable category & backup exists → recover_from_backup()

        recover_from_backup()
            primary key → verify/repair → RecoveredDocument
            failure → _attempt_alternative_recovery(1..max_recovery_attempts)

Tags:
    recovery, backup, scheduling, docsafe

Doc-Types:
    - API Reference
    - Recovery Guide
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from docsafe.core.backups import BackupStore
from docsafe.core.errors import (
    ClassifiedError,
    DocsafeError,
    ErrorCategory,
    StorageError,
    StorageQuotaError,
    classify_error,
    is_backup_recoverable,
)
from docsafe.core.integrity import IntegrityStatus, verify_and_repair
from docsafe.core.logging import get_logger
from docsafe.core.models import DEFAULT_TITLE, BackupKey, BackupRecord, RecoveredDocument
from docsafe.core.timestamps import utc_now
from docsafe.execution.timers import PeriodicTimer
from docsafe.recovery.metrics import MetricsRecorder
from docsafe.recovery.strategies import DEFAULT_ERROR_THRESHOLD, RecoveryStrategies, SelfHealHook

logger = get_logger(__name__)

DEFAULT_BACKUP_INTERVAL = 60.0
DEFAULT_MAX_RECOVERY_ATTEMPTS = 3

BackupCreatedCallback = Callable[[datetime], None]


@dataclass
class RecoveryOutcome:
    """Result of :meth:`RecoveryService.handle_error_with_recovery`."""

    recovered: bool
    recovery_document: RecoveredDocument | None = None
    category: ErrorCategory | None = None
    self_healed: bool = False


class RecoveryService:
    """Backup scheduling and recovery for one editable item.

    Args:
        store: Backup store shared by the process
        backup_interval: Seconds between periodic backups
        max_recovery_attempts: Alternative-recovery attempts after a failed load
        error_threshold: Consecutive errors per context before self-healing
        self_heal: Override for the self-healing hook (default: store sweep)
        metrics: Optional recorder for recovery attempts
        clock: Monotonic time source in seconds
    """

    def __init__(
        self,
        store: BackupStore,
        *,
        backup_interval: float = DEFAULT_BACKUP_INTERVAL,
        max_recovery_attempts: int = DEFAULT_MAX_RECOVERY_ATTEMPTS,
        error_threshold: int = DEFAULT_ERROR_THRESHOLD,
        self_heal: SelfHealHook | None = None,
        metrics: MetricsRecorder | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.backup_interval = backup_interval
        self.max_recovery_attempts = max_recovery_attempts
        self.metrics = metrics
        self._clock = clock
        self.strategies = RecoveryStrategies(
            threshold=error_threshold,
            self_heal=self_heal or self._sweep_corrupted_backups,
        )

        self.document_id: str | None = None
        self.title: str = DEFAULT_TITLE
        self.role: str | None = None
        self._on_backup_created: BackupCreatedCallback | None = None

        self._current_content = ""
        self._last_backup_content = ""
        self._last_backup_at: float | None = None
        self._timer: PeriodicTimer | None = None
        self._log = logger

    # ── Binding ──────────────────────────────────────────────────

    def initialize(
        self,
        document_id: str | None,
        title: str | None,
        role: str | None,
        on_backup_created: BackupCreatedCallback | None = None,
    ) -> None:
        """Bind the service to one item and reset all counters."""
        self.stop_auto_backup()
        self.document_id = document_id
        self.title = title or DEFAULT_TITLE
        self.role = role
        self._on_backup_created = on_backup_created
        self._current_content = ""
        self._last_backup_content = ""
        self._last_backup_at = None
        self.strategies.reset()
        self._log = logger.bind(document_id=document_id, role=role)
        self._log.info("recovery.initialized", title=self.title)

    @property
    def key(self) -> BackupKey | None:
        if self.document_id:
            return BackupKey.for_document(self.document_id)
        if self.role:
            return BackupKey.for_role(self.role)
        return None

    @property
    def backup_frequency(self) -> float:
        """Minimum seconds between two non-forced backups."""
        return self.backup_interval

    @property
    def has_outstanding_errors(self) -> bool:
        return self.strategies.total_errors > 0

    @property
    def auto_backup_running(self) -> bool:
        return self._timer is not None and self._timer.running

    def track_content(self, content: str) -> None:
        """Record the editor's latest content for periodic and forced backups."""
        self._current_content = content

    # ── Scheduling ───────────────────────────────────────────────

    def start_auto_backup(self, initial_content: str = "") -> None:
        """Back up ``initial_content`` now (if non-empty), then arm the periodic timer.

        Must be called from a running event loop.
        """
        self.stop_auto_backup()
        if initial_content:
            self.track_content(initial_content)
        if initial_content and initial_content.strip():
            self.create_backup(initial_content)

        self._timer = PeriodicTimer(
            self._periodic_backup,
            lambda: self.backup_frequency,
            name="auto_backup",
        )
        self._timer.start()
        self._log.info("recovery.auto_backup_started", interval=self.backup_frequency)

    def stop_auto_backup(self) -> None:
        if self._timer is not None:
            self._timer.stop()
            self._timer = None
            self._log.info("recovery.auto_backup_stopped")

    async def _periodic_backup(self) -> None:
        if self._current_content:
            self.create_backup(self._current_content)

    # ── Backups ──────────────────────────────────────────────────

    def create_backup(
        self,
        content: str,
        meta: dict[str, Any] | None = None,
        *,
        force: bool = False,
    ) -> bool:
        """Back up ``content`` unless it is redundant.

        Skipped when the content is empty, identical to the last backup, or
        when the last backup is younger than :attr:`backup_frequency` while no
        errors are outstanding. ``force`` bypasses only the timing check.
        """
        key = self.key
        if key is None or not content or not content.strip():
            return False
        if content == self._last_backup_content:
            self._log.debug("backup.suppressed_identical", key=key.storage_key)
            return False
        if (
            not force
            and not self.has_outstanding_errors
            and self._last_backup_at is not None
            and self._clock() - self._last_backup_at < self.backup_frequency
        ):
            self._log.debug("backup.suppressed_recent", key=key.storage_key)
            return False

        if not self._write_backup(key, content, meta):
            return False

        self._last_backup_content = content
        self._last_backup_at = self._clock()
        if self._on_backup_created is not None:
            self._on_backup_created(utc_now())
        return True

    def _write_backup(self, key: BackupKey, content: str, meta: dict[str, Any] | None) -> bool:
        """Write once; on quota exhaustion reclaim the item's own space and retry once."""
        try:
            self.store.write(content, key, self.title, meta)
            return True
        except StorageQuotaError as exc:
            self._log.warning("backup.quota_exceeded", key=key.storage_key, error=exc.message)
        except DocsafeError as exc:
            self._log.warning("backup.write_failed", key=key.storage_key, error=exc.message)
            return False

        self.strategies.attempt_storage_recovery(self.store, key)
        try:
            self.store.write(content, key, self.title, meta)
        except DocsafeError as exc:
            self._log.error("backup.retry_failed", key=key.storage_key, error=exc.message)
            return False
        self._log.info("backup.written_after_reclaim", key=key.storage_key)
        return True

    def has_backup(self) -> bool:
        key = self.key
        return key is not None and self.store.has_backup(key)

    def clear_backup(self) -> bool:
        """Remove the item's backup after the owning save succeeded."""
        key = self.key
        if key is None:
            return False
        self._last_backup_content = ""
        return self.store.remove(key)

    # ── Recovery ─────────────────────────────────────────────────

    def handle_error_with_recovery(self, error: object, context: str) -> RecoveryOutcome:
        """Classify ``error`` and fall back to the backup when that can help."""
        classified = classify_error(error, context)
        healed = self.strategies.track_error(error, context)
        self._on_classified_error(classified, context)

        outcome = RecoveryOutcome(recovered=False, category=classified.category, self_healed=healed)
        if is_backup_recoverable(classified.category) and self.has_backup():
            document = self.recover_from_backup()
            if document is not None:
                outcome.recovered = True
                outcome.recovery_document = document
                self.strategies.reset_error_count(context)

        self._log.info(
            "recovery.error_handled",
            context=context,
            category=classified.category.value,
            recovered=outcome.recovered,
            self_healed=healed,
            technical=classified.technical_message,
        )
        return outcome

    def _on_classified_error(self, classified: ClassifiedError, context: str) -> None:
        """Hook run after classification, before recovery."""

    def recover_from_backup(self) -> RecoveredDocument | None:
        """Load the item's backup, repairing it if its checksum fails.

        When the primary record is missing, unreadable or beyond repair, the
        alternative-recovery hook is tried up to ``max_recovery_attempts``
        times.
        """
        started = self._clock()
        document = self._recover_primary()
        attempt = 0
        while document is None and attempt < self.max_recovery_attempts:
            attempt += 1
            document = self._attempt_alternative_recovery(attempt)

        success = document is not None
        if self.metrics is not None:
            elapsed_ms = (self._clock() - started) * 1000
            self.metrics.record_attempt(success, elapsed_ms if success else None)
        self._log.info("recovery.from_backup", recovered=success, alternative_attempts=attempt)
        return document

    def _recover_primary(self) -> RecoveredDocument | None:
        key = self.key
        if key is None:
            return None
        try:
            record = self.store.load(key)
        except StorageError as exc:
            self._log.warning("recovery.load_failed", key=key.storage_key, error=exc.message)
            return None
        if record is None:
            return None
        return self._document_from(record)

    def _document_from(self, record: BackupRecord) -> RecoveredDocument | None:
        """Verify ``record`` and translate it; persists a repaired record."""
        result = verify_and_repair(record)
        if result.status == IntegrityStatus.CORRUPTED:
            self._log.warning("recovery.backup_corrupted", key=record.key.storage_key)
            return None
        if result.status == IntegrityStatus.REPAIRED and result.record is not None:
            record = result.record
            self._log.warning(
                "recovery.backup_repaired",
                key=record.key.storage_key,
                method=result.method.value if result.method else None,
            )
            try:
                self.store.put(record)
            except DocsafeError as exc:
                self._log.warning("recovery.repair_not_persisted", error=exc.message)
        return RecoveredDocument.from_backup(record)

    def _attempt_alternative_recovery(self, attempt: int) -> RecoveredDocument | None:
        """Alternative strategy hook; the base service has none."""
        return None

    def _sweep_corrupted_backups(self, error: object, context: str) -> bool:
        return self.store.verify_and_clean_all().removed > 0

    # ── Lifecycle ────────────────────────────────────────────────

    def dispose(self) -> None:
        """Stop the timer and clear counters; safe to call repeatedly."""
        self.stop_auto_backup()
        self.strategies.reset()
        self._current_content = ""

    async def __aenter__(self) -> RecoveryService:
        return self

    async def __aexit__(self, *args: object) -> None:
        self.dispose()


__all__ = [
    "DEFAULT_BACKUP_INTERVAL",
    "DEFAULT_MAX_RECOVERY_ATTEMPTS",
    "BackupCreatedCallback",
    "RecoveryOutcome",
    "RecoveryService",
]
