"""Tests for BackupStore."""

from datetime import timedelta

import pytest

from docsafe.core.backups import BackupStore
from docsafe.core.errors import StorageError, ValidationError
from docsafe.core.integrity import IntegrityStatus, verify
from docsafe.core.models import BACKUP_PREFIX, BackupKey, BackupRecord
from docsafe.core.storage import InMemoryStorage

DOC = BackupKey.for_document("doc-1")
ROLE = BackupKey.for_role("writer")


class _ExplodingStorage(InMemoryStorage):
    """Storage whose writes fail with an arbitrary error."""

    def set(self, key: str, value: str) -> None:
        raise RuntimeError("disk on fire")


class TestBackup:
    """Tests for BackupStore.backup."""

    def test_creates_verified_record(self, store):
        """A backup is stored with a valid checksum."""
        assert store.backup("<p>hello</p>", DOC, "Draft") is True
        record = store.get(DOC)
        assert record.content == "<p>hello</p>"
        assert record.title == "Draft"
        assert verify(record).status == IntegrityStatus.VALID

    @pytest.mark.parametrize("content", ["", "   ", "\n\t"])
    def test_empty_content_is_noop(self, store, storage, content):
        """Blank content returns False and writes nothing."""
        assert store.backup(content, DOC) is False
        assert storage.keys(BACKUP_PREFIX) == []

    def test_sequential_backups_leave_one_record(self, store, storage):
        """Three backups to one key leave exactly the last content."""
        for content in ("first", "second", "third"):
            assert store.backup(content, DOC)
        assert storage.keys(BACKUP_PREFIX) == [DOC.storage_key]
        assert store.get(DOC).content == "third"

    def test_quota_exceeded_returns_false(self, wall_clock):
        """A write rejected for quota returns False instead of raising."""
        store = BackupStore(InMemoryStorage(max_bytes=64), clock=wall_clock)
        assert store.backup("x" * 500, DOC) is False
        assert store.get(DOC) is None

    def test_unexpected_storage_failure_returns_false(self, wall_clock):
        """Any storage exception stays behind the boundary."""
        store = BackupStore(_ExplodingStorage(), clock=wall_clock)
        assert store.backup("content", DOC) is False

    def test_created_at_preserved_on_overwrite(self, store, wall_clock):
        """createdAt survives overwrites while updatedAt moves."""
        store.backup("v1", DOC)
        created = store.get(DOC).created_at
        wall_clock.advance(minutes=5)
        store.backup("v2", DOC)
        record = store.get(DOC)
        assert record.created_at == created
        assert record.updated_at == created + timedelta(minutes=5)

    def test_without_integrity(self, store):
        """with_integrity=False stores no checksum."""
        store.backup("plain", DOC, with_integrity=False)
        assert store.get(DOC).integrity is None

    def test_role_keyed_backup(self, store):
        """Fresh work without an id is keyed by role."""
        store.backup("new work", ROLE)
        record = store.get(ROLE)
        assert record.role == "writer"
        assert record.document_id is None

    def test_stored_layout_uses_camel_case(self, store, storage):
        """The persisted record uses the documented field names."""
        store.backup("hello", DOC, meta={"status": "draft"})
        raw = storage.get(DOC.storage_key)
        for name in ('"documentId"', '"createdAt"', '"updatedAt"', '"algorithmVersion"'):
            assert name in raw


class TestWrite:
    """Tests for the raising write variant."""

    def test_rejects_blank_content(self, store):
        """write raises ValidationError on blank content."""
        with pytest.raises(ValidationError):
            store.write("  ", DOC)

    def test_propagates_storage_errors(self, wall_clock):
        """write lets storage errors through for callers that recover from them."""
        store = BackupStore(InMemoryStorage(max_bytes=64), clock=wall_clock)
        with pytest.raises(StorageError):
            store.write("x" * 500, DOC)


class TestReads:
    """Tests for get/load/has_backup/list_records."""

    def test_unreadable_record(self, store, storage):
        """get returns None for garbage, load raises."""
        storage.set(DOC.storage_key, "{not json")
        assert store.get(DOC) is None
        with pytest.raises(StorageError):
            store.load(DOC)

    def test_has_backup(self, store):
        """has_backup reflects presence."""
        assert not store.has_backup(DOC)
        store.backup("x", DOC)
        assert store.has_backup(DOC)

    def test_list_records_newest_first(self, store, wall_clock):
        """Records are listed by updatedAt, newest first."""
        store.backup("a", BackupKey.for_document("a"))
        wall_clock.advance(minutes=1)
        store.backup("b", BackupKey.for_document("b"))
        wall_clock.advance(minutes=1)
        store.backup("c", ROLE)
        assert [r.content for r in store.list_records()] == ["c", "b", "a"]

    def test_remove(self, store):
        """remove reports whether a record existed."""
        store.backup("x", DOC)
        assert store.remove(DOC) is True
        assert store.remove(DOC) is False


class TestVerifyAndCleanAll:
    """Tests for the integrity sweep."""

    def test_removes_only_corrupted(self, store, storage):
        """Corrupted and unreadable records go; valid and unchecked stay."""
        store.backup("good", DOC)
        store.backup("unchecked", ROLE, with_integrity=False)

        bad_key = BackupKey.for_document("bad")
        store.backup("original", bad_key)
        tampered = store.get(bad_key).model_copy(update={"content": "tampered"})
        storage.set(bad_key.storage_key, tampered.to_json())

        storage.set(BackupKey.for_document("garbage").storage_key, "%%%")

        report = store.verify_and_clean_all()

        assert report.total == 4
        assert report.valid == 2
        assert report.corrupted == 2
        assert report.removed == 2
        assert report.no_checksum == 1
        assert sorted(storage.keys(BACKUP_PREFIX)) == sorted([DOC.storage_key, ROLE.storage_key])

    def test_ignores_non_backup_keys(self, store, storage):
        """Other records in the shared store are not touched."""
        storage.set("docsafe:preferences", "{}")
        report = store.verify_and_clean_all()
        assert report.total == 0
        assert storage.get("docsafe:preferences") == "{}"


class TestPrune:
    """Tests for retention."""

    def test_expired_records_removed(self, store, wall_clock):
        """Records older than max_age are deleted."""
        store.backup("old", BackupKey.for_document("old"))
        wall_clock.advance(days=10)
        store.backup("new", BackupKey.for_document("new"))

        report = store.prune(max_age=timedelta(days=7), max_records=None)

        assert report.expired == [BackupKey.for_document("old").storage_key]
        assert [r.content for r in store.list_records()] == ["new"]

    def test_cap_keeps_newest(self, store, wall_clock):
        """Beyond max_records, the oldest are deleted."""
        for name in ("a", "b", "c", "d"):
            store.backup(name, BackupKey.for_document(name))
            wall_clock.advance(minutes=1)

        report = store.prune(max_age=None, max_records=2)

        assert report.removed == 2
        assert [r.content for r in store.list_records()] == ["d", "c"]


class TestBackupRecord:
    """Tests for the record model itself."""

    def test_requires_identity(self, wall_clock):
        """A record needs a document id or a role."""
        with pytest.raises(ValueError):
            BackupRecord(
                title="t", content="c", created_at=wall_clock(), updated_at=wall_clock()
            )

    def test_json_round_trip_keeps_key(self, store):
        """Serialized records decode to the same key."""
        store.backup("x", ROLE)
        record = store.get(ROLE)
        assert BackupRecord.from_json(record.to_json()).key == ROLE
