"""
Persisted recovery metrics.

One :class:`~docsafe.core.models.RecoveryMetrics` record per subsystem,
updated read-modify-write on every attempt. The running average recovery
time is exponentially weighted over successful attempts::

    new_avg = old_avg * (1 - 0.3) + latest * 0.3

seeded with the first successful sample so a single fast recovery does not
report 30% of its real duration.
"""

from __future__ import annotations

from typing import Callable

from pydantic import ValidationError as PydanticValidationError

from docsafe.core.errors import StorageError
from docsafe.core.logging import get_logger
from docsafe.core.models import RecoveryMetrics
from docsafe.core.storage import KeyValueStorage
from docsafe.core.timestamps import epoch_ms

logger = get_logger(__name__)

DOCUMENT_METRICS_KEY = "docsafe:metrics:documents"
SESSION_METRICS_KEY = "docsafe:metrics:session"

SMOOTHING_FACTOR = 0.3


class MetricsRecorder:
    """Read-modify-write access to one metrics record.

    Metrics are diagnostics: a failed write is logged and the in-memory
    result is still returned, it never interrupts the recovery it measures.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        key: str,
        *,
        now_ms: Callable[[], int] = epoch_ms,
    ) -> None:
        self.storage = storage
        self.key = key
        self._now_ms = now_ms

    def load(self) -> RecoveryMetrics:
        try:
            raw = self.storage.get(self.key)
        except StorageError as exc:
            logger.warning("metrics.read_failed", key=self.key, error=exc.message)
            return RecoveryMetrics()
        if raw is None:
            return RecoveryMetrics()
        try:
            return RecoveryMetrics.model_validate_json(raw)
        except PydanticValidationError:
            logger.warning("metrics.invalid_record", key=self.key)
            return RecoveryMetrics()

    def _save(self, metrics: RecoveryMetrics) -> None:
        try:
            self.storage.set(self.key, metrics.model_dump_json(by_alias=True))
        except StorageError as exc:
            logger.warning("metrics.write_failed", key=self.key, error=exc.message)

    def record_attempt(self, success: bool, duration_ms: float | None = None) -> RecoveryMetrics:
        """Count one attempt and persist the updated record."""
        metrics = self.load()
        now = self._now_ms()

        metrics.total_attempts += 1
        metrics.last_attempt_timestamp = now
        if success:
            metrics.successful_attempts += 1
            metrics.last_success_timestamp = now
            if duration_ms is not None:
                if metrics.successful_attempts == 1 or metrics.average_recovery_time_ms == 0:
                    metrics.average_recovery_time_ms = float(duration_ms)
                else:
                    metrics.average_recovery_time_ms = (
                        metrics.average_recovery_time_ms * (1 - SMOOTHING_FACTOR)
                        + duration_ms * SMOOTHING_FACTOR
                    )
        else:
            metrics.failed_attempts += 1
            metrics.last_failure_timestamp = now

        metrics.success_rate = metrics.successful_attempts / metrics.total_attempts * 100
        self._save(metrics)
        return metrics

    def reset(self) -> None:
        try:
            self.storage.delete(self.key)
        except StorageError as exc:
            logger.warning("metrics.reset_failed", key=self.key, error=exc.message)


__all__ = [
    "DOCUMENT_METRICS_KEY",
    "SESSION_METRICS_KEY",
    "SMOOTHING_FACTOR",
    "MetricsRecorder",
]
