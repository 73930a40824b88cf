"""
docsafe settings - environment-driven configuration.

All knobs of the backup, recovery, autosave and session layers live in one
:class:`DocsafeSettings` model. Values come from ``DOCSAFE_*`` environment
variables or a ``.env`` file; durations are seconds.

Usage::

    from docsafe.core.settings import get_settings

    settings = get_settings()
    settings.autosave_interval     # 2.0
    settings.backup_retention_days # 7

Per-user preferences (the autosave interval chosen in the editor) are not
settings; they live in :mod:`docsafe.core.preferences` and override the
defaults defined here.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DocsafeSettings(BaseSettings):
    """Process-wide configuration for docsafe.

    Fields
    ──────
    log_level                    : Structlog log level
    json_logs                    : Force JSON (True) / console (False) output
    data_dir                     : Directory for the SQLite store
    database_path                : SQLite file (defaults to data_dir/docsafe.db)
    autosave_interval            : Debounce interval before a save fires
    autosave_max_retries         : Save attempts before the terminal error state
    autosave_retry_base_delay    : First backoff delay between save attempts
    autosave_max_delay           : Cap for the adaptive post-error delay
    backup_interval              : Base periodic backup interval
    backup_retention_days        : Age limit for the retention sweep
    backup_max_records           : Record cap for the retention sweep
    max_recovery_attempts        : Alternative-recovery attempts per recovery
    consecutive_error_threshold  : Errors per context before self-healing runs
    session_max_retries          : Refresh attempts before forcing re-auth
    session_failure_threshold    : Breaker failures before it opens
    session_reset_timeout        : Breaker cooldown before probing again
    """

    model_config = SettingsConfigDict(
        env_prefix="DOCSAFE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    json_logs: bool | None = None

    # ── Storage ──────────────────────────────────────────────────
    data_dir: Path = Field(
        default_factory=lambda: Path.home() / ".docsafe",
        description="Persistent data directory",
    )
    database_path: Path | None = None

    # ── Autosave ─────────────────────────────────────────────────
    autosave_interval: float = Field(default=2.0, gt=0)
    autosave_max_retries: int = Field(default=3, ge=1)
    autosave_retry_base_delay: float = Field(default=1.0, ge=0)
    autosave_max_delay: float = Field(default=30.0, gt=0)

    # ── Backups ──────────────────────────────────────────────────
    backup_interval: float = Field(default=60.0, gt=0)
    backup_retention_days: int = Field(default=7, ge=1)
    backup_max_records: int = Field(default=20, ge=1)

    # ── Recovery ─────────────────────────────────────────────────
    max_recovery_attempts: int = Field(default=3, ge=0)
    consecutive_error_threshold: int = Field(default=3, ge=1)

    # ── Session ──────────────────────────────────────────────────
    session_max_retries: int = Field(default=3, ge=1)
    session_failure_threshold: int = Field(default=3, ge=1)
    session_reset_timeout: float = Field(default=30.0, ge=0)

    @model_validator(mode="after")
    def _default_database_path(self) -> DocsafeSettings:
        if self.database_path is None:
            self.database_path = self.data_dir / "docsafe.db"
        return self


@lru_cache(maxsize=1)
def get_settings() -> DocsafeSettings:
    """Return the cached settings instance."""
    return DocsafeSettings()


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    get_settings.cache_clear()


__all__ = ["DocsafeSettings", "get_settings", "clear_settings_cache"]
