"""
Enhanced recovery: error-adaptive backup frequency and forced backups.

Builds on :class:`~docsafe.recovery.service.RecoveryService`:

- the backup frequency follows the sum of per-context consecutive errors
  (0 → 60 s, 1-3 → 30 s, more → 15 s with the default base interval)
- network, server and storage errors force an immediate backup of the
  latest tracked content, tagged ``forcedBackup`` with the error context
- when the document-keyed backup cannot be used, the role-keyed backup
  (work started before the document had an id) is tried instead
"""

from __future__ import annotations

from docsafe.core.errors import ClassifiedError, DocsafeError, ErrorCategory
from docsafe.core.logging import get_logger
from docsafe.core.models import BackupKey, RecoveredDocument
from docsafe.recovery.service import DEFAULT_BACKUP_INTERVAL, RecoveryService

logger = get_logger(__name__)

FORCED_BACKUP_CATEGORIES = frozenset(
    {ErrorCategory.NETWORK, ErrorCategory.SERVER, ErrorCategory.STORAGE}
)

# Upper bound of the "some errors" band.
ELEVATED_ERROR_LIMIT = 3


class BackupFrequencyManager:
    """Maps the outstanding error count to a backup interval in seconds."""

    def __init__(self, base_interval: float = DEFAULT_BACKUP_INTERVAL) -> None:
        self.base_interval = base_interval

    def frequency_for(self, total_errors: int) -> float:
        if total_errors <= 0:
            return self.base_interval
        if total_errors <= ELEVATED_ERROR_LIMIT:
            return self.base_interval / 2
        return self.base_interval / 4


class EnhancedRecoveryService(RecoveryService):
    """Recovery service whose backup cadence tightens while errors persist."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.frequency_manager = BackupFrequencyManager(self.backup_interval)

    @property
    def backup_frequency(self) -> float:
        return self.frequency_manager.frequency_for(self.strategies.total_errors)

    def _on_classified_error(self, classified: ClassifiedError, context: str) -> None:
        if classified.category not in FORCED_BACKUP_CATEGORIES:
            return
        if not self._current_content:
            return
        forced = self.create_backup(
            self._current_content,
            {"forcedBackup": True, "errorContext": context},
            force=True,
        )
        self._log.info(
            "recovery.forced_backup",
            context=context,
            category=classified.category.value,
            written=forced,
            frequency=self.backup_frequency,
        )

    @property
    def _role_key(self) -> BackupKey | None:
        # Only distinct from the primary key once a document id exists.
        if self.document_id and self.role:
            return BackupKey.for_role(self.role)
        return None

    def has_backup(self) -> bool:
        if super().has_backup():
            return True
        role_key = self._role_key
        return role_key is not None and self.store.has_backup(role_key)

    def _attempt_alternative_recovery(self, attempt: int) -> RecoveredDocument | None:
        role_key = self._role_key
        if role_key is None:
            return None
        try:
            record = self.store.load(role_key)
        except DocsafeError as exc:
            self._log.warning(
                "recovery.alternative_failed",
                attempt=attempt,
                key=role_key.storage_key,
                error=exc.message,
            )
            return None
        if record is None:
            return None
        document = self._document_from(record)
        if document is None:
            return None
        self._log.info("recovery.alternative_succeeded", attempt=attempt, key=role_key.storage_key)
        return document.model_copy(update={"id": self.document_id})


__all__ = [
    "FORCED_BACKUP_CATEGORIES",
    "BackupFrequencyManager",
    "EnhancedRecoveryService",
]
