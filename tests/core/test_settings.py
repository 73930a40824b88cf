"""Tests for settings and persisted preferences."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from docsafe.core.preferences import PREFERENCES_KEY, PreferenceStore
from docsafe.core.settings import DocsafeSettings, clear_settings_cache, get_settings


class TestDocsafeSettings:
    """Tests for DocsafeSettings."""

    def test_defaults(self, settings):
        """Defaults match the documented intervals and limits."""
        assert settings.autosave_interval == 2.0
        assert settings.autosave_max_retries == 3
        assert settings.autosave_max_delay == 30.0
        assert settings.backup_interval == 60.0
        assert settings.max_recovery_attempts == 3
        assert settings.session_failure_threshold == 3
        assert settings.session_reset_timeout == 30.0

    def test_database_path_defaults_under_data_dir(self, tmp_path):
        """database_path follows data_dir unless set."""
        settings = DocsafeSettings(data_dir=tmp_path, _env_file=None)
        assert settings.database_path == tmp_path / "docsafe.db"

    def test_env_override(self, monkeypatch):
        """DOCSAFE_* environment variables override defaults."""
        monkeypatch.setenv("DOCSAFE_AUTOSAVE_INTERVAL", "5")
        monkeypatch.setenv("DOCSAFE_DATABASE_PATH", "/tmp/other.db")
        clear_settings_cache()
        settings = get_settings()
        assert settings.autosave_interval == 5.0
        assert settings.database_path == Path("/tmp/other.db")

    def test_rejects_non_positive_interval(self):
        """Intervals must be positive."""
        with pytest.raises(ValidationError):
            DocsafeSettings(autosave_interval=0, _env_file=None)

    def test_cached(self):
        """get_settings returns the same instance until cleared."""
        assert get_settings() is get_settings()


class TestPreferenceStore:
    """Tests for the persisted preference record."""

    def test_default_is_none(self, storage):
        """No stored preference means None."""
        assert PreferenceStore(storage).autosave_interval is None

    def test_round_trip(self, storage):
        """A chosen interval is persisted under the preferences key."""
        prefs = PreferenceStore(storage)
        prefs.set_autosave_interval(10.0)
        assert PreferenceStore(storage).autosave_interval == 10.0
        assert '"autosaveInterval"' in storage.get(PREFERENCES_KEY)

    def test_clear(self, storage):
        """Setting None removes the override."""
        prefs = PreferenceStore(storage)
        prefs.set_autosave_interval(10.0)
        prefs.set_autosave_interval(None)
        assert prefs.autosave_interval is None

    def test_invalid_record_falls_back(self, storage):
        """A corrupt preference record reads as defaults."""
        storage.set(PREFERENCES_KEY, "not json")
        assert PreferenceStore(storage).autosave_interval is None

    def test_rejects_non_positive(self, storage):
        """Zero is not a valid interval."""
        with pytest.raises(ValidationError):
            PreferenceStore(storage).set_autosave_interval(0)
