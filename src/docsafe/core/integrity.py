"""
Backup integrity: checksums, verification and best-effort structural repair.

Manifesto:
    Corruption *detection* is authoritative and cheap: a SHA-256 digest over
    the exact UTF-8 bytes of the content. Corruption *repair* is a heuristic
    that only ever closes structures the user already opened; it never
    invents text.

Architecture:
    ::

        compute_checksum(content) ──► hex digest (sha256/1)

        verify(record)
            no integrity  → NO_CHECKSUM
            digest match  → VALID
            mismatch      → CORRUPTED

        verify_and_repair(record)
            CORRUPTED ──► attempt_repair(content)
                            markup  → tag-repair   (drop cut-off tag, close open tags LIFO)
                            JSON    → json-repair  (close open string/brackets)
                                    → json-truncate (cut back to last complete member)
                          recovered → REPAIRED (fresh checksum, meta.recovery)

Tags:
    integrity, checksum, sha256, repair, docsafe

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import hashlib
import json
import re
from dataclasses import dataclass
from enum import Enum

from docsafe.core.models import BackupRecord, IntegrityInfo
from docsafe.core.timestamps import to_iso8601, utc_now

ALGORITHM_VERSION = "sha256/1"

_PARTIAL_TAG = re.compile(r"<[!/?a-zA-Z][^>]*$")
_COMMENT = re.compile(r"<!--.*?-->", re.DOTALL)
_TAG = re.compile(r"<(/?)([a-zA-Z][\w:.-]*)([^<>]*)>")
_VOID_ELEMENTS = frozenset(
    {
        "area", "base", "br", "col", "embed", "hr", "img", "input",
        "link", "meta", "param", "source", "track", "wbr",
    }
)


class IntegrityStatus(str, Enum):
    """Verdict of an integrity check."""

    VALID = "valid"
    CORRUPTED = "corrupted"
    REPAIRED = "repaired"
    NO_CHECKSUM = "no-checksum"


class RepairMethod(str, Enum):
    """How :func:`attempt_repair` reconstructed the content."""

    TAG_REPAIR = "tag-repair"
    JSON_REPAIR = "json-repair"
    JSON_TRUNCATE = "json-truncate"
    NONE = "none"


@dataclass(frozen=True)
class RepairResult:
    recovered: bool
    method: RepairMethod
    content: str


@dataclass(frozen=True)
class IntegrityResult:
    """Outcome of :func:`verify` / :func:`verify_and_repair`.

    Attributes:
        status: Verdict
        original: Content as stored
        repaired: Reconstructed content (REPAIRED only)
        method: Repair method used (REPAIRED only)
        detail: Human-readable explanation
        record: Repaired record with fresh integrity (REPAIRED only)
    """

    status: IntegrityStatus
    original: str
    repaired: str | None = None
    method: RepairMethod | None = None
    detail: str = ""
    record: BackupRecord | None = None

    @property
    def valid(self) -> bool:
        return self.status in (IntegrityStatus.VALID, IntegrityStatus.REPAIRED)


def compute_checksum(content: str) -> str:
    """
    SHA-256 hex digest over the UTF-8 bytes of ``content``.

    Deterministic and order-sensitive. Characters outside the BMP are encoded
    as their full 4-byte UTF-8 sequences; no normalization is applied, so
    visually identical but differently composed strings hash differently.

    Examples:
        >>> compute_checksum("hello") == compute_checksum("hello")
        True
        >>> compute_checksum("ab") != compute_checksum("ba")
        True
    """
    return hashlib.sha256(content.encode("utf-8", "surrogatepass")).hexdigest()


def verify_checksum(content: str, checksum: str) -> bool:
    """Check ``content`` against a previously computed checksum."""
    if not checksum:
        return False
    return compute_checksum(content) == checksum


def attach_integrity(record: BackupRecord) -> BackupRecord:
    """Return a copy of ``record`` carrying a checksum of its current content."""
    info = IntegrityInfo(
        checksum=compute_checksum(record.content),
        algorithm_version=ALGORITHM_VERSION,
    )
    return record.model_copy(update={"integrity": info})


def verify(record: BackupRecord) -> IntegrityResult:
    """Recompute the checksum of ``record.content`` and compare to the stored one."""
    if record.integrity is None or not record.integrity.checksum:
        return IntegrityResult(
            status=IntegrityStatus.NO_CHECKSUM,
            original=record.content,
            detail="No checksum available",
        )
    if verify_checksum(record.content, record.integrity.checksum):
        return IntegrityResult(
            status=IntegrityStatus.VALID,
            original=record.content,
            detail="Content integrity verified",
        )
    return IntegrityResult(
        status=IntegrityStatus.CORRUPTED,
        original=record.content,
        detail="Content does not match checksum",
    )


def verify_and_repair(record: BackupRecord) -> IntegrityResult:
    """Verify ``record`` and, when corrupted, try to reconstruct it.

    A repaired record gets a fresh checksum and a ``meta["recovery"]`` entry
    naming the method and the checksum it was originally stored with.
    """
    result = verify(record)
    if result.status != IntegrityStatus.CORRUPTED:
        return result

    repair = attempt_repair(record.content)
    if not repair.recovered:
        return result

    meta = dict(record.meta)
    meta["recovery"] = {
        "method": repair.method.value,
        "originalChecksum": record.integrity.checksum if record.integrity else None,
        "timestamp": to_iso8601(utc_now()),
    }
    repaired = attach_integrity(record.model_copy(update={"content": repair.content, "meta": meta}))
    return IntegrityResult(
        status=IntegrityStatus.REPAIRED,
        original=record.content,
        repaired=repair.content,
        method=repair.method,
        detail=f"Content reconstructed via {repair.method.value}",
        record=repaired,
    )


# =============================================================================
# REPAIR HEURISTICS
# =============================================================================


def attempt_repair(content: str) -> RepairResult:
    """Best-effort structural repair of truncated markup or JSON.

    Returns ``recovered=False`` with the content unchanged when no heuristic
    applies or when the content is already structurally complete. The
    checksum stays authoritative: a successful repair does not mean the
    content is what the user wrote, only that it is well-formed again.
    """
    if not content or not content.strip():
        return RepairResult(False, RepairMethod.NONE, content)

    if content.lstrip()[:1] in ("{", "["):
        result = _repair_json(content)
        return result or RepairResult(False, RepairMethod.NONE, content)

    if "<" in content:
        repaired = _repair_tags(content)
        if repaired != content:
            return RepairResult(True, RepairMethod.TAG_REPAIR, repaired)

    return RepairResult(False, RepairMethod.NONE, content)


def _repair_tags(content: str) -> str:
    """Drop a cut-off trailing tag, then close still-open elements LIFO."""
    stripped = _PARTIAL_TAG.sub("", content)

    stack: list[str] = []
    for match in _TAG.finditer(_COMMENT.sub("", stripped)):
        closing, name, attrs = match.groups()
        lowered = name.lower()
        if closing:
            for index in range(len(stack) - 1, -1, -1):
                if stack[index].lower() == lowered:
                    del stack[index:]
                    break
            continue
        if lowered in _VOID_ELEMENTS or attrs.rstrip().endswith("/"):
            continue
        stack.append(name)

    return stripped + "".join(f"</{name}>" for name in reversed(stack))


def _json_tail_state(text: str) -> tuple[list[str], bool, list[int]]:
    """Scan ``text`` and report open brackets, open string, and safe cut points.

    A cut point is an offset where the prefix ends right after an opening
    bracket or right before a member-separating comma.
    """
    stack: list[str] = []
    cuts: list[int] = []
    in_string = False
    escaped = False
    for index, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char in "{[":
            stack.append("}" if char == "{" else "]")
            cuts.append(index + 1)
        elif char in "}]":
            if stack:
                stack.pop()
        elif char == "," and stack:
            cuts.append(index)
    return stack, in_string, cuts


def _close_json(prefix: str) -> str | None:
    stack, in_string, _ = _json_tail_state(prefix)
    candidate = prefix.rstrip()
    if in_string:
        if candidate.endswith("\\"):
            candidate = candidate[:-1]
        candidate += '"'
    candidate += "".join(reversed(stack))
    try:
        json.loads(candidate)
    except ValueError:
        return None
    return candidate


def _repair_json(content: str) -> RepairResult | None:
    try:
        json.loads(content)
        return None
    except ValueError:
        pass

    closed = _close_json(content)
    if closed is not None:
        return RepairResult(True, RepairMethod.JSON_REPAIR, closed)

    _, _, cuts = _json_tail_state(content)
    for cut in reversed(cuts):
        closed = _close_json(content[:cut])
        if closed is not None and json.loads(closed):
            return RepairResult(True, RepairMethod.JSON_TRUNCATE, closed)
    return None


__all__ = [
    "ALGORITHM_VERSION",
    "IntegrityStatus",
    "RepairMethod",
    "RepairResult",
    "IntegrityResult",
    "compute_checksum",
    "verify_checksum",
    "attach_integrity",
    "verify",
    "verify_and_repair",
    "attempt_repair",
]
