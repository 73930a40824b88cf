"""
Timestamp utilities.

Persisted records carry timezone-aware UTC datetimes serialized as ISO 8601;
metric records carry epoch milliseconds.
"""

from __future__ import annotations

import time
from datetime import UTC, datetime


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)


def epoch_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def to_iso8601(dt: datetime | None) -> str | None:
    """Convert datetime to ISO 8601 string."""
    if dt is None:
        return None
    return dt.isoformat()


__all__ = ["utc_now", "epoch_ms", "to_iso8601"]
