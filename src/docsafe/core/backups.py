"""
Backup store - one live snapshot per document (or per role for new work).

Manifesto:
    The backup store is the last line of defence for unsaved work, so it
    must never become the thing that crashes the editor:

    - **One record per key:** A new backup replaces the old one in a single put
    - **Never throws on write:** Quota and serialization failures become ``False``
    - **Self-healing:** ``verify_and_clean_all`` drops records that fail their checksum
    - **Bounded:** ``prune`` enforces age and count limits on demand

Architecture:
    ::

        backup(content, key, title, meta, with_integrity)
            │  reject empty / whitespace-only
            ▼
        BackupRecord ──► attach_integrity ──► storage.set(key, json)   (one atomic put)

        verify_and_clean_all()
            snapshot keys ──► get ──► verify ──► delete CORRUPTED / unreadable

        prune(max_age, max_records)
            expired (updatedAt < now - max_age) ──► delete
            newest max_records kept            ──► delete the rest

Tags:
    backup, storage, integrity, retention, docsafe

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable

from pydantic import ValidationError as PydanticValidationError

from docsafe.core.errors import DocsafeError, SerializationError, StorageError, ValidationError
from docsafe.core.integrity import IntegrityStatus, attach_integrity, verify
from docsafe.core.logging import get_logger
from docsafe.core.models import BACKUP_PREFIX, DEFAULT_TITLE, BackupKey, BackupRecord
from docsafe.core.storage import KeyValueStorage
from docsafe.core.timestamps import utc_now

logger = get_logger(__name__)

DEFAULT_RETENTION = timedelta(days=7)
DEFAULT_MAX_RECORDS = 20


@dataclass
class VerificationReport:
    """Aggregate counts from one integrity sweep."""

    total: int = 0
    valid: int = 0
    corrupted: int = 0
    removed: int = 0
    no_checksum: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass
class PruneReport:
    """What a retention sweep removed."""

    examined: int = 0
    expired: list[str] = field(default_factory=list)
    over_limit: list[str] = field(default_factory=list)

    @property
    def removed(self) -> int:
        return len(self.expired) + len(self.over_limit)

    def to_dict(self) -> dict[str, Any]:
        return {
            "examined": self.examined,
            "expired": list(self.expired),
            "over_limit": list(self.over_limit),
            "removed": self.removed,
        }


class BackupStore:
    """Keyed backup records on top of a :class:`KeyValueStorage`.

    Args:
        storage: Shared key-value store
        clock: Source of "now" for record timestamps and retention
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.storage = storage
        self._clock = clock

    # ── Writes ───────────────────────────────────────────────────

    def put(self, record: BackupRecord) -> None:
        """Write ``record`` under its key, replacing any previous record.

        Raises:
            SerializationError: The record could not be encoded
            StorageError: The medium refused the write (incl. quota)
        """
        try:
            payload = record.to_json()
        except (ValueError, TypeError) as exc:
            raise SerializationError(
                f"Could not encode backup for {record.key}", cause=exc
            ).with_context(key=record.key.storage_key) from exc
        self.storage.set(record.key.storage_key, payload)

    def write(
        self,
        content: str,
        key: BackupKey,
        title: str | None = DEFAULT_TITLE,
        meta: dict[str, Any] | None = None,
        with_integrity: bool = True,
    ) -> BackupRecord:
        """Build a record for ``content`` and store it, replacing the previous one.

        ``createdAt`` is carried over from the record being replaced.

        Raises:
            ValidationError: ``content`` is empty or whitespace-only
            StorageError: The write failed (``StorageQuotaError`` when full)
        """
        if not content or not content.strip():
            raise ValidationError("Refusing to back up empty content").with_context(
                key=key.storage_key
            )

        now = self._clock()
        previous = self.get(key)
        record = BackupRecord(
            document_id=key.document_id,
            role=key.role,
            title=title or DEFAULT_TITLE,
            content=content,
            created_at=previous.created_at if previous else now,
            updated_at=now,
            meta=dict(meta or {}),
        )
        if with_integrity:
            record = attach_integrity(record)
        self.put(record)
        return record

    def backup(
        self,
        content: str,
        key: BackupKey,
        title: str | None = DEFAULT_TITLE,
        meta: dict[str, Any] | None = None,
        with_integrity: bool = True,
    ) -> bool:
        """Snapshot ``content`` under ``key``.

        Returns ``False`` without writing when the content is empty or
        whitespace-only, and ``False`` when the write fails for any storage
        reason. Never raises for storage failures.
        """
        if not content or not content.strip():
            logger.debug("backup.skipped_empty", key=key.storage_key)
            return False

        try:
            record = self.write(content, key, title, meta, with_integrity)
        except DocsafeError as exc:
            logger.warning(
                "backup.write_failed",
                key=key.storage_key,
                size=len(content),
                **exc.to_dict(),
            )
            return False
        except Exception as exc:
            logger.error("backup.write_failed", key=key.storage_key, error=str(exc))
            return False

        logger.debug(
            "backup.created",
            key=key.storage_key,
            size=len(content),
            checksum=record.integrity.checksum if record.integrity else None,
        )
        return True

    # ── Reads ────────────────────────────────────────────────────

    def _load(self, storage_key: str) -> BackupRecord | None:
        """Decode the record under ``storage_key``.

        Raises:
            StorageError: Storage read failed or the record is undecodable
        """
        raw = self.storage.get(storage_key)
        if raw is None:
            return None
        try:
            return BackupRecord.from_json(raw)
        except (PydanticValidationError, ValueError) as exc:
            raise StorageError(
                f"Unreadable backup record {storage_key!r}", cause=exc
            ).with_context(key=storage_key) from exc

    def load(self, key: BackupKey) -> BackupRecord | None:
        """Like :meth:`get`, but an unreadable record raises ``StorageError``."""
        return self._load(key.storage_key)

    def get(self, key: BackupKey) -> BackupRecord | None:
        """Return the record under ``key``; ``None`` if missing or unreadable."""
        try:
            return self._load(key.storage_key)
        except StorageError as exc:
            logger.warning("backup.read_failed", key=key.storage_key, error=exc.message)
            return None

    def has_backup(self, key: BackupKey) -> bool:
        try:
            return self.storage.get(key.storage_key) is not None
        except StorageError:
            return False

    def list_records(self) -> list[BackupRecord]:
        """All readable records, newest first."""
        records = []
        for storage_key in self.storage.keys(BACKUP_PREFIX):
            try:
                record = self._load(storage_key)
            except StorageError:
                continue
            if record is not None:
                records.append(record)
        records.sort(key=lambda r: r.updated_at, reverse=True)
        return records

    # ── Removal ──────────────────────────────────────────────────

    def remove(self, key: BackupKey) -> bool:
        """Delete the record under ``key``; ``True`` only if one existed."""
        try:
            removed = self.storage.delete(key.storage_key)
        except StorageError as exc:
            logger.warning("backup.remove_failed", key=key.storage_key, error=exc.message)
            return False
        if removed:
            logger.debug("backup.removed", key=key.storage_key)
        return removed

    def verify_and_clean_all(self) -> VerificationReport:
        """Verify every record and delete the corrupted ones.

        Iterates a snapshot of the keys, so a concurrent write to another key
        cannot disturb the sweep. Undecodable records count as corrupted.
        Records written without integrity are counted but kept.
        """
        report = VerificationReport()
        for storage_key in self.storage.keys(BACKUP_PREFIX):
            try:
                record = self._load(storage_key)
            except StorageError:
                record = None
                corrupted = True
            else:
                if record is None:
                    continue
                status = verify(record).status
                corrupted = status == IntegrityStatus.CORRUPTED
                if status == IntegrityStatus.NO_CHECKSUM:
                    report.no_checksum += 1

            report.total += 1
            if not corrupted:
                report.valid += 1
                continue

            report.corrupted += 1
            try:
                if self.storage.delete(storage_key):
                    report.removed += 1
            except StorageError as exc:
                logger.warning("backup.remove_failed", key=storage_key, error=exc.message)

        logger.info("backup.verify_completed", **report.to_dict())
        return report

    def prune(
        self,
        max_age: timedelta | None = DEFAULT_RETENTION,
        max_records: int | None = DEFAULT_MAX_RECORDS,
    ) -> PruneReport:
        """Enforce retention: drop expired records, then the oldest beyond the cap."""
        report = PruneReport()
        records = self.list_records()
        report.examined = len(records)

        keep = records
        if max_age is not None:
            cutoff = self._clock() - max_age
            keep = []
            for record in records:
                if record.updated_at < cutoff:
                    if self.remove(record.key):
                        report.expired.append(record.key.storage_key)
                else:
                    keep.append(record)

        if max_records is not None and len(keep) > max_records:
            for record in keep[max_records:]:
                if self.remove(record.key):
                    report.over_limit.append(record.key.storage_key)

        if report.removed:
            logger.info("backup.pruned", examined=report.examined, removed=report.removed)
        return report


__all__ = [
    "DEFAULT_RETENTION",
    "DEFAULT_MAX_RECORDS",
    "VerificationReport",
    "PruneReport",
    "BackupStore",
]
