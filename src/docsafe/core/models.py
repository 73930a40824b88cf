"""
Persisted record models.

Every record docsafe writes to the key-value store is one of these pydantic
models, serialized as a single JSON document with camelCase field names::

    BackupRecord     { documentId | role, title, content, createdAt,
                       updatedAt, meta, integrity?: {checksum, algorithmVersion} }
    RecoveryMetrics  { totalAttempts, successfulAttempts, failedAttempts,
                       successRate, lastAttemptTimestamp, lastSuccessTimestamp,
                       lastFailureTimestamp, averageRecoveryTimeMs }
    RecoveryState    { recoveryAttempts, circuitBreakerStatus }

Python code uses the snake_case attribute names; the aliases only matter on
the wire.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

DEFAULT_TITLE = "Untitled Document"
BACKUP_PREFIX = "docsafe:backup:"


@dataclass(frozen=True)
class BackupKey:
    """Identity of one backup slot.

    A document that has been saved at least once is keyed by its id; fresh
    work that has no id yet is keyed by the editor role that created it.

    Example:
        >>> BackupKey.for_document("doc-42").storage_key
        'docsafe:backup:document:doc-42'
        >>> BackupKey.from_storage_key("docsafe:backup:role:writer")
        BackupKey(document_id=None, role='writer')
    """

    document_id: str | None = None
    role: str | None = None

    def __post_init__(self) -> None:
        if not self.document_id and not self.role:
            raise ValueError("BackupKey needs a document_id or a role")

    @classmethod
    def for_document(cls, document_id: str) -> BackupKey:
        return cls(document_id=document_id)

    @classmethod
    def for_role(cls, role: str) -> BackupKey:
        return cls(role=role)

    @classmethod
    def from_storage_key(cls, raw: str) -> BackupKey:
        if not raw.startswith(BACKUP_PREFIX):
            raise ValueError(f"Not a backup key: {raw!r}")
        kind, _, value = raw[len(BACKUP_PREFIX):].partition(":")
        if kind == "document" and value:
            return cls(document_id=value)
        if kind == "role" and value:
            return cls(role=value)
        raise ValueError(f"Not a backup key: {raw!r}")

    @property
    def storage_key(self) -> str:
        if self.document_id:
            return f"{BACKUP_PREFIX}document:{self.document_id}"
        return f"{BACKUP_PREFIX}role:{self.role}"

    def __str__(self) -> str:
        return self.storage_key


class IntegrityInfo(BaseModel):
    """Checksum attached to a backup record."""

    model_config = ConfigDict(populate_by_name=True)

    checksum: str
    algorithm_version: str = Field(alias="algorithmVersion")


class BackupRecord(BaseModel):
    """Last known-good snapshot of one editable item."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    document_id: str | None = Field(default=None, alias="documentId")
    role: str | None = None
    title: str = DEFAULT_TITLE
    content: str
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")
    meta: dict[str, Any] = Field(default_factory=dict)
    integrity: IntegrityInfo | None = None

    @model_validator(mode="after")
    def _require_identity(self) -> BackupRecord:
        if not self.document_id and not self.role:
            raise ValueError("BackupRecord needs a documentId or a role")
        return self

    @property
    def key(self) -> BackupKey:
        if self.document_id:
            return BackupKey.for_document(self.document_id)
        return BackupKey.for_role(self.role or "")

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)

    @classmethod
    def from_json(cls, raw: str) -> BackupRecord:
        return cls.model_validate_json(raw)


class RecoveryMetrics(BaseModel):
    """Running counters for one recovery subsystem.

    ``success_rate`` is a percentage. ``average_recovery_time_ms`` is an
    exponentially weighted average over successful attempts only.
    """

    model_config = ConfigDict(populate_by_name=True)

    total_attempts: int = Field(default=0, alias="totalAttempts")
    successful_attempts: int = Field(default=0, alias="successfulAttempts")
    failed_attempts: int = Field(default=0, alias="failedAttempts")
    success_rate: float = Field(default=0.0, alias="successRate")
    last_attempt_timestamp: int | None = Field(default=None, alias="lastAttemptTimestamp")
    last_success_timestamp: int | None = Field(default=None, alias="lastSuccessTimestamp")
    last_failure_timestamp: int | None = Field(default=None, alias="lastFailureTimestamp")
    average_recovery_time_ms: float = Field(default=0.0, alias="averageRecoveryTimeMs")


class RecoveryState(BaseModel):
    """Persisted session-recovery progress, restored after a reload."""

    model_config = ConfigDict(populate_by_name=True)

    recovery_attempts: int = Field(default=0, alias="recoveryAttempts")
    circuit_breaker_status: str = Field(default="CLOSED", alias="circuitBreakerStatus")


def _optional_str(value: Any) -> str | None:
    return None if value is None else str(value)


def _version(value: Any) -> int:
    if isinstance(value, bool):
        return 1
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value)
    return value if isinstance(value, int) and value > 0 else 1


class RecoveredDocument(BaseModel):
    """A backup translated back into the editor's document shape."""

    id: str | None
    title: str
    content: str
    created_at: datetime
    updated_at: datetime
    owner_id: str | None = None
    status: str | None = None
    version: int = 1
    meta: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_backup(cls, record: BackupRecord) -> RecoveredDocument:
        """Build the document from a backup; ``meta`` values are free-form."""
        meta = dict(record.meta)
        return cls(
            id=record.document_id,
            title=record.title or DEFAULT_TITLE,
            content=record.content,
            created_at=record.created_at,
            updated_at=record.updated_at,
            owner_id=_optional_str(meta.get("owner_id")),
            status=_optional_str(meta.get("status")),
            version=_version(meta.get("version")),
            meta=meta,
        )


__all__ = [
    "DEFAULT_TITLE",
    "BACKUP_PREFIX",
    "BackupKey",
    "IntegrityInfo",
    "BackupRecord",
    "RecoveryMetrics",
    "RecoveryState",
    "RecoveredDocument",
]
