"""Document and session recovery services."""

from docsafe.recovery.enhanced import BackupFrequencyManager, EnhancedRecoveryService
from docsafe.recovery.metrics import MetricsRecorder
from docsafe.recovery.service import RecoveryOutcome, RecoveryService
from docsafe.recovery.session import (
    AuthClient,
    SessionRecoveryReason,
    SessionRecoveryResult,
    SessionRecoveryService,
)
from docsafe.recovery.strategies import RecoveryStrategies

__all__ = [
    "AuthClient",
    "BackupFrequencyManager",
    "EnhancedRecoveryService",
    "MetricsRecorder",
    "RecoveryOutcome",
    "RecoveryService",
    "RecoveryStrategies",
    "SessionRecoveryReason",
    "SessionRecoveryResult",
    "SessionRecoveryService",
]
