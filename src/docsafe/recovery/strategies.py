"""
Recovery strategies: consecutive-error tracking and storage reclamation.

Errors are counted per *context* (``"save"``, ``"load"``, ``"backup"``...).
When one context reaches the threshold, a best-effort self-healing hook runs;
if it reports success that context's counter starts over.
"""

from __future__ import annotations

from typing import Callable

from docsafe.core.backups import BackupStore
from docsafe.core.logging import get_logger
from docsafe.core.models import BackupKey

logger = get_logger(__name__)

SelfHealHook = Callable[[object, str], bool]

DEFAULT_ERROR_THRESHOLD = 3


class RecoveryStrategies:
    """Per-context consecutive-error counters plus the self-healing trigger.

    Args:
        threshold: Consecutive errors in one context before self-healing runs
        self_heal: ``hook(error, context) -> healed``; ``None`` never heals
    """

    def __init__(
        self,
        *,
        threshold: int = DEFAULT_ERROR_THRESHOLD,
        self_heal: SelfHealHook | None = None,
    ) -> None:
        self.threshold = threshold
        self.self_heal = self_heal
        self.consecutive_errors: dict[str, int] = {}

    @property
    def total_errors(self) -> int:
        return sum(self.consecutive_errors.values())

    def track_error(self, error: object, context: str) -> bool:
        """Count ``error`` against ``context``; returns whether self-healing succeeded."""
        count = self.consecutive_errors.get(context, 0) + 1
        self.consecutive_errors[context] = count
        if count < self.threshold or self.self_heal is None:
            return False

        try:
            healed = bool(self.self_heal(error, context))
        except Exception:
            logger.exception("recovery.self_heal_failed", context=context)
            return False

        logger.info("recovery.self_heal", context=context, errors=count, healed=healed)
        if healed:
            self.consecutive_errors[context] = 0
        return healed

    def reset_error_count(self, context: str) -> None:
        self.consecutive_errors[context] = 0

    def reset(self) -> None:
        self.consecutive_errors.clear()

    def attempt_storage_recovery(self, store: BackupStore, key: BackupKey | None) -> bool:
        """Reclaim space by removing the item's own backup.

        Other documents' backups are never touched.
        """
        if key is None:
            return False
        reclaimed = store.remove(key)
        logger.info("recovery.storage_reclaimed", key=key.storage_key, reclaimed=reclaimed)
        return reclaimed


__all__ = ["SelfHealHook", "DEFAULT_ERROR_THRESHOLD", "RecoveryStrategies"]
