"""
Persisted user preferences.

The editor lets a user pick their own autosave interval; the choice is
process-wide and survives restarts, so it lives in the shared key-value
store as one JSON record rather than in :class:`DocsafeSettings`.

Resolution order for the autosave interval::

    explicit argument  >  stored preference  >  settings.autosave_interval
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from docsafe.core.errors import StorageError
from docsafe.core.logging import get_logger
from docsafe.core.storage import KeyValueStorage

logger = get_logger(__name__)

PREFERENCES_KEY = "docsafe:preferences"


class Preferences(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    autosave_interval: float | None = Field(default=None, alias="autosaveInterval", gt=0)


class PreferenceStore:
    """Read/write access to the persisted :class:`Preferences` record."""

    def __init__(self, storage: KeyValueStorage, key: str = PREFERENCES_KEY) -> None:
        self.storage = storage
        self.key = key

    def load(self) -> Preferences:
        """Current preferences; defaults when missing or unreadable."""
        try:
            raw = self.storage.get(self.key)
        except StorageError as exc:
            logger.warning("preferences.read_failed", error=exc.message)
            return Preferences()
        if raw is None:
            return Preferences()
        try:
            return Preferences.model_validate_json(raw)
        except PydanticValidationError:
            logger.warning("preferences.invalid_record", key=self.key)
            return Preferences()

    def save(self, preferences: Preferences) -> None:
        self.storage.set(self.key, preferences.model_dump_json(by_alias=True, exclude_none=True))

    @property
    def autosave_interval(self) -> float | None:
        return self.load().autosave_interval

    def set_autosave_interval(self, seconds: float | None) -> None:
        prefs = self.load().model_copy(update={"autosave_interval": seconds})
        self.save(Preferences.model_validate(prefs.model_dump()))


__all__ = ["PREFERENCES_KEY", "Preferences", "PreferenceStore"]
