"""Tests for error tracking and self-healing."""

from docsafe.core.models import BackupKey
from docsafe.recovery.strategies import RecoveryStrategies


class HealHook:
    def __init__(self, result=True):
        self.result = result
        self.calls = []

    def __call__(self, error, context):
        self.calls.append((error, context))
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


class TestTrackError:
    """Tests for per-context counters."""

    def test_counts_per_context(self):
        """Each context has its own consecutive count."""
        strategies = RecoveryStrategies()
        strategies.track_error(RuntimeError("a"), "save")
        strategies.track_error(RuntimeError("b"), "save")
        strategies.track_error(RuntimeError("c"), "load")
        assert strategies.consecutive_errors == {"save": 2, "load": 1}
        assert strategies.total_errors == 3

    def test_heals_at_threshold(self):
        """The hook runs on the threshold-th error and resets the count when it heals."""
        hook = HealHook(True)
        strategies = RecoveryStrategies(threshold=3, self_heal=hook)
        assert strategies.track_error(RuntimeError("1"), "save") is False
        assert strategies.track_error(RuntimeError("2"), "save") is False
        assert strategies.track_error(RuntimeError("3"), "save") is True
        assert len(hook.calls) == 1
        assert strategies.consecutive_errors["save"] == 0

    def test_unhealed_keeps_counting(self):
        """A hook that reports failure leaves the counter alone."""
        strategies = RecoveryStrategies(threshold=2, self_heal=HealHook(False))
        strategies.track_error(RuntimeError("1"), "save")
        assert strategies.track_error(RuntimeError("2"), "save") is False
        assert strategies.consecutive_errors["save"] == 2

    def test_raising_hook_is_contained(self):
        """A failing hook counts as not healed."""
        strategies = RecoveryStrategies(threshold=1, self_heal=HealHook(RuntimeError("hook")))
        assert strategies.track_error(RuntimeError("x"), "save") is False

    def test_reset(self):
        """reset_error_count zeroes one context; reset clears all."""
        strategies = RecoveryStrategies()
        strategies.track_error(RuntimeError("x"), "save")
        strategies.track_error(RuntimeError("x"), "load")
        strategies.reset_error_count("save")
        assert strategies.total_errors == 1
        strategies.reset()
        assert strategies.total_errors == 0


class TestStorageRecovery:
    """Tests for quota reclamation."""

    def test_removes_only_own_key(self, store):
        """Other items' backups survive reclamation."""
        mine = BackupKey.for_document("doc-1")
        other = BackupKey.for_document("doc-2")
        store.write("mine", mine)
        store.write("theirs", other)

        assert RecoveryStrategies().attempt_storage_recovery(store, mine) is True
        assert store.get(mine) is None
        assert store.get(other).content == "theirs"

    def test_no_key(self, store):
        """Without a key nothing is reclaimed."""
        assert RecoveryStrategies().attempt_storage_recovery(store, None) is False
