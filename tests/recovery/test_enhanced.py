"""Tests for the enhanced recovery service."""

import pytest

from docsafe.core.errors import NetworkError, ServerError, ValidationError
from docsafe.core.models import BackupKey
from docsafe.recovery.enhanced import BackupFrequencyManager, EnhancedRecoveryService
from docsafe.recovery.service import RecoveryService

DOC = BackupKey.for_document("doc-1")
ROLE = BackupKey.for_role("writer")


@pytest.fixture
def enhanced(store, fake_clock):
    svc = EnhancedRecoveryService(store, backup_interval=60.0, clock=fake_clock)
    svc.initialize("doc-1", "Draft", "writer")
    return svc


class TestBackupFrequencyManager:
    """Tests for the error-adaptive interval."""

    @pytest.mark.parametrize(
        "errors,expected",
        [(0, 60.0), (1, 30.0), (3, 30.0), (4, 15.0), (10, 15.0)],
    )
    def test_bands(self, errors, expected):
        """No errors, a few, and many map to full, half and quarter intervals."""
        assert BackupFrequencyManager(60.0).frequency_for(errors) == expected


class TestEnhancedRecoveryService:
    """Tests for forced backups and role-key fallback."""

    def test_frequency_follows_errors(self, enhanced):
        """Outstanding errors tighten the backup cadence."""
        assert enhanced.backup_frequency == 60.0
        enhanced.handle_error_with_recovery(ValidationError("bad"), "save")
        assert enhanced.backup_frequency == 30.0
        for _ in range(3):
            enhanced.handle_error_with_recovery(ValidationError("bad"), "load")
        assert enhanced.backup_frequency == 15.0

    def test_network_error_forces_backup(self, enhanced, store):
        """A network error backs up the latest content immediately."""
        enhanced.create_backup("<p>v1</p>")
        enhanced.track_content("<p>v2</p>")

        outcome = enhanced.handle_error_with_recovery(NetworkError("Failed to fetch"), "save")

        record = store.get(DOC)
        assert record.content == "<p>v2</p>"
        assert record.meta == {"forcedBackup": True, "errorContext": "save"}
        assert outcome.recovered is True
        assert outcome.recovery_document.content == "<p>v2</p>"

    def test_server_error_forces_backup(self, enhanced, store):
        """Server errors are in the forced-backup set."""
        enhanced.track_content("<p>v1</p>")
        enhanced.handle_error_with_recovery(ServerError("boom", status=503), "save")
        assert store.get(DOC).meta["forcedBackup"] is True

    def test_validation_error_does_not_force(self, enhanced, store):
        """Non-transient errors leave the backup alone."""
        enhanced.create_backup("<p>v1</p>")
        enhanced.track_content("<p>v2</p>")
        enhanced.handle_error_with_recovery(ValidationError("title is required"), "save")
        assert store.get(DOC).content == "<p>v1</p>"

    def test_falls_back_to_role_backup(self, enhanced, store):
        """Work saved before the document had an id is recovered under the id."""
        store.write("<p>early draft</p>", ROLE, "Draft")
        assert enhanced.has_backup()

        document = enhanced.recover_from_backup()
        assert document.id == "doc-1"
        assert document.content == "<p>early draft</p>"

    def test_corrupt_primary_falls_back(self, enhanced, store, storage):
        """An unreadable document backup falls back to the role backup."""
        storage.set(DOC.storage_key, "{not json")
        store.write("<p>role copy</p>", ROLE, "Draft")
        assert enhanced.recover_from_backup().content == "<p>role copy</p>"

    def test_base_service_ignores_role_backup(self, store, fake_clock):
        """Only the enhanced service looks at the role key."""
        store.write("<p>early draft</p>", ROLE, "Draft")
        base = RecoveryService(store, clock=fake_clock)
        base.initialize("doc-1", "Draft", "writer")
        assert base.has_backup() is False
        assert base.recover_from_backup() is None
