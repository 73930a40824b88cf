"""Tests for checksums, verification and structural repair."""

import json
from datetime import UTC, datetime

import pytest

from docsafe.core.integrity import (
    ALGORITHM_VERSION,
    IntegrityStatus,
    RepairMethod,
    attach_integrity,
    attempt_repair,
    compute_checksum,
    verify,
    verify_and_repair,
    verify_checksum,
)
from docsafe.core.models import BackupRecord

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


def _record(content: str, **kwargs) -> BackupRecord:
    return BackupRecord(
        document_id="doc-1",
        title="Draft",
        content=content,
        created_at=NOW,
        updated_at=NOW,
        **kwargs,
    )


class TestChecksum:
    """Tests for compute_checksum / verify_checksum."""

    @pytest.mark.parametrize("content", ["hello", "", "<p>Ünïcödé 🎉</p>", "a" * 10_000])
    def test_round_trip(self, content):
        """A checksum always verifies its own content."""
        assert verify_checksum(content, compute_checksum(content))

    def test_other_content_fails(self):
        """Different content never verifies against another checksum."""
        checksum = compute_checksum("hello")
        assert not verify_checksum("hello!", checksum)
        assert not verify_checksum("Hello", checksum)

    def test_order_sensitive(self):
        """Permuted content hashes differently."""
        assert compute_checksum("ab") != compute_checksum("ba")

    def test_empty_checksum_never_verifies(self):
        """A missing checksum is not a match."""
        assert not verify_checksum("x", "")

    def test_sha256_hex(self):
        """Digest is 64 lowercase hex characters."""
        digest = compute_checksum("hello")
        assert len(digest) == 64
        assert digest == digest.lower()


class TestVerify:
    """Tests for record-level verification."""

    def test_attached_record_is_valid(self):
        """A freshly attached checksum verifies."""
        record = attach_integrity(_record("<p>hi</p>"))
        assert record.integrity.algorithm_version == ALGORITHM_VERSION
        assert verify(record).status == IntegrityStatus.VALID

    def test_mutated_content_is_corrupted(self):
        """Changing only the content yields CORRUPTED."""
        record = attach_integrity(_record("<p>hi</p>"))
        tampered = record.model_copy(update={"content": "<p>hI</p>"})
        result = verify(tampered)
        assert result.status == IntegrityStatus.CORRUPTED
        assert not result.valid

    def test_no_checksum(self):
        """Records written without integrity report NO_CHECKSUM."""
        assert verify(_record("plain")).status == IntegrityStatus.NO_CHECKSUM


class TestAttemptRepair:
    """Tests for the repair heuristics."""

    def test_closes_open_tags(self):
        """Unclosed elements are closed innermost first."""
        result = attempt_repair("<div><p>Hello <b>world")
        assert result.recovered
        assert result.method == RepairMethod.TAG_REPAIR
        assert result.content == "<div><p>Hello <b>world</b></p></div>"

    def test_drops_partial_trailing_tag(self):
        """A tag cut off mid-way is removed before closing."""
        result = attempt_repair("<p>Hello <em")
        assert result.content == "<p>Hello </p>"

    def test_void_and_self_closing_elements_ignored(self):
        """<br>, <img> and <x/> never need closers."""
        result = attempt_repair('<p>line<br>pic<img src="a.png"><hr/>')
        assert result.content == '<p>line<br>pic<img src="a.png"><hr/></p>'

    def test_repair_is_idempotent(self):
        """Repairing already-repaired markup changes nothing."""
        first = attempt_repair("<ul><li>one<li>two")
        second = attempt_repair(first.content)
        assert not second.recovered
        assert second.content == first.content

    def test_well_formed_markup_not_recovered(self):
        """Complete markup is reported as not repaired."""
        result = attempt_repair("<p>done</p>")
        assert not result.recovered
        assert result.method == RepairMethod.NONE

    def test_plain_text_not_recovered(self):
        """Text without markup has nothing to repair."""
        assert not attempt_repair("just words").recovered

    @pytest.mark.parametrize("content", ["", "   "])
    def test_empty_not_recovered(self, content):
        """Blank content is never recovered."""
        assert not attempt_repair(content).recovered

    def test_json_closed(self):
        """Truncated JSON is closed when the prefix is complete."""
        result = attempt_repair('{"a": 1, "b": [1, 2')
        assert result.method == RepairMethod.JSON_REPAIR
        assert json.loads(result.content) == {"a": 1, "b": [1, 2]}

    def test_json_open_string_closed(self):
        """A string cut mid-way is terminated."""
        result = attempt_repair('{"title": "Hel')
        assert json.loads(result.content) == {"title": "Hel"}

    def test_json_truncated_to_last_member(self):
        """An unfinished member is dropped."""
        result = attempt_repair('{"a": 1, "b": tr')
        assert result.method == RepairMethod.JSON_TRUNCATE
        assert json.loads(result.content) == {"a": 1}

    def test_valid_json_not_recovered(self):
        """Complete JSON is left alone."""
        assert not attempt_repair('{"a": [1, 2]}').recovered


class TestVerifyAndRepair:
    """Tests for verify_and_repair."""

    def test_valid_passes_through(self):
        """A valid record is returned as VALID without changes."""
        record = attach_integrity(_record("<p>ok</p>"))
        result = verify_and_repair(record)
        assert result.status == IntegrityStatus.VALID
        assert result.record is None

    def test_repaired_record_annotated(self):
        """A repaired record has fresh integrity and recovery metadata."""
        record = attach_integrity(_record("<p>Hello <b>world</b></p>"))
        truncated = record.model_copy(update={"content": "<p>Hello <b>wor"})
        result = verify_and_repair(truncated)

        assert result.status == IntegrityStatus.REPAIRED
        assert result.valid
        assert result.repaired == "<p>Hello <b>wor</b></p>"
        repaired = result.record
        assert verify(repaired).status == IntegrityStatus.VALID
        assert repaired.meta["recovery"]["method"] == "tag-repair"
        assert repaired.meta["recovery"]["originalChecksum"] == record.integrity.checksum

    def test_unrepairable_stays_corrupted(self):
        """Corrupted content with no applicable heuristic stays CORRUPTED."""
        record = attach_integrity(_record("plain text"))
        tampered = record.model_copy(update={"content": "plain text!"})
        assert verify_and_repair(tampered).status == IntegrityStatus.CORRUPTED
