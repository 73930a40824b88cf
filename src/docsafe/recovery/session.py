"""
Session recovery - token refresh behind a circuit breaker.

Manifesto:
    An expired session should cost the user one transparent refresh, not a
    lost draft. A dead auth service should cost them one clear message,
    not a storm of refresh calls:

    - **One refresh at a time:** concurrent callers get ``refresh_in_progress``
    - **Bounded:** after ``max_retries`` failed attempts the caller is told
      to redirect to re-authentication
    - **Breaker-protected:** 3 failures open the circuit for 30 s
    - **Survives reloads:** the attempt counter is persisted; an OPEN
      circuit is not restored, so a crash cannot lock the user out

Architecture:
    ::

        handle_auth_error(error, context)
            not AUTHENTICATION            → not_auth_error
            no jwt/token/session/... word → not_session_error
            otherwise                     → recover_session()

        recover_session()
            in flight?              → refresh_in_progress
            attempts >= max_retries → max_retries_exceeded (redirect)
            attempts += 1
            breaker.execute:
                get_session() is None     → no_session (redirect)
                refresh_session() raises  → breaker failure
                refresh_session() is None → refresh_failed (redirect)
                refreshed                 → recovered, attempts = 0
            CircuitOpenError → circuit_open
            AUTHENTICATION   → auth_error (redirect)
            anything else    → unexpected_error

Tags:
    session, authentication, circuit-breaker, recovery, docsafe

Doc-Types:
    - API Reference
    - Recovery Guide
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable, Protocol, runtime_checkable

from pydantic import ValidationError as PydanticValidationError

from docsafe.core.errors import ErrorCategory, StorageError, classify_error
from docsafe.core.logging import get_logger
from docsafe.core.models import RecoveryMetrics, RecoveryState
from docsafe.core.storage import KeyValueStorage
from docsafe.execution.circuit_breaker import CircuitBreaker, CircuitOpenError, CircuitState
from docsafe.recovery.metrics import SESSION_METRICS_KEY, MetricsRecorder

logger = get_logger(__name__)

RECOVERY_STATE_KEY = "docsafe:session:recovery-state"
AUTH_REDIRECT = "/auth"

DEFAULT_MAX_RETRIES = 3
DEFAULT_FAILURE_THRESHOLD = 3
DEFAULT_RESET_TIMEOUT = 30.0

SESSION_ERROR_KEYWORDS = ("jwt", "token", "session", "authentication", "unauthorized")

NotifyCallback = Callable[[str, str], None]
SessionStateCallback = Callable[[bool], None]


@runtime_checkable
class AuthClient(Protocol):
    """The two calls session recovery needs from an authentication backend.

    Both return ``None`` when there is no (refreshed) session and raise on
    transport or service errors.
    """

    async def get_session(self) -> Any | None: ...

    async def refresh_session(self) -> Any | None: ...


class SessionRecoveryReason(str, Enum):
    """Why a recovery attempt did not restore the session."""

    REFRESH_IN_PROGRESS = "refresh_in_progress"
    MAX_RETRIES_EXCEEDED = "max_retries_exceeded"
    NO_SESSION = "no_session"
    REFRESH_FAILED = "refresh_failed"
    CIRCUIT_OPEN = "circuit_open"
    AUTH_ERROR = "auth_error"
    UNEXPECTED_ERROR = "unexpected_error"
    NOT_AUTH_ERROR = "not_auth_error"
    NOT_SESSION_ERROR = "not_session_error"


@dataclass
class SessionRecoveryResult:
    recovered: bool
    reason: SessionRecoveryReason | None = None
    should_redirect: bool = False
    redirect_to: str | None = None

    @classmethod
    def success(cls) -> SessionRecoveryResult:
        return cls(recovered=True)

    @classmethod
    def failed(cls, reason: SessionRecoveryReason, *, redirect: bool = False) -> SessionRecoveryResult:
        return cls(
            recovered=False,
            reason=reason,
            should_redirect=redirect,
            redirect_to=AUTH_REDIRECT if redirect else None,
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["reason"] = self.reason.value if self.reason else None
        return data


class SessionRecoveryService:
    """Refreshes expired sessions through a dedicated circuit breaker.

    Args:
        auth_client: Backend providing ``get_session`` / ``refresh_session``
        storage: Where recovery state and session metrics are persisted
        max_retries: Attempts before the caller is told to re-authenticate
        breaker: Circuit breaker (default: 3 failures, 30 s cooldown, 1 probe)
        notify: ``notify(level, message)`` sink for user-facing notices
        on_session_state_change: Called with ``False`` when the auth service
            becomes unavailable and ``True`` when it is restored
        clock: Monotonic time source in seconds
    """

    def __init__(
        self,
        auth_client: AuthClient,
        storage: KeyValueStorage,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        breaker: CircuitBreaker | None = None,
        notify: NotifyCallback | None = None,
        on_session_state_change: SessionStateCallback | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.auth_client = auth_client
        self.storage = storage
        self.max_retries = max_retries
        self.breaker = breaker or CircuitBreaker(
            name="auth",
            failure_threshold=DEFAULT_FAILURE_THRESHOLD,
            reset_timeout=DEFAULT_RESET_TIMEOUT,
            half_open_max_calls=1,
        )
        self._notify = notify
        self._on_session_state_change = on_session_state_change
        self._clock = clock
        self._metrics = MetricsRecorder(storage, SESSION_METRICS_KEY)

        self._refresh_in_progress = False
        self.recovery_attempts = self._load_state().recovery_attempts
        self._unsubscribe = self.breaker.on_state_change(self._handle_breaker_change)

    # ── Persistence ──────────────────────────────────────────────

    def _load_state(self) -> RecoveryState:
        try:
            raw = self.storage.get(RECOVERY_STATE_KEY)
        except StorageError as exc:
            logger.warning("session.state_read_failed", error=exc.message)
            return RecoveryState()
        if raw is None:
            return RecoveryState()
        try:
            state = RecoveryState.model_validate_json(raw)
        except PydanticValidationError:
            logger.warning("session.state_invalid")
            return RecoveryState()
        logger.debug(
            "session.state_restored",
            recovery_attempts=state.recovery_attempts,
            stored_circuit_status=state.circuit_breaker_status,
        )
        return state

    def _save_state(self) -> None:
        state = RecoveryState(
            recovery_attempts=self.recovery_attempts,
            circuit_breaker_status=self.breaker.state.value,
        )
        try:
            self.storage.set(RECOVERY_STATE_KEY, state.model_dump_json(by_alias=True))
        except StorageError as exc:
            logger.warning("session.state_write_failed", error=exc.message)

    # ── Observers ────────────────────────────────────────────────

    def _send(self, level: str, message: str) -> None:
        if self._notify is not None:
            self._notify(level, message)

    def _handle_breaker_change(self, new_state: CircuitState, old_state: CircuitState) -> None:
        if new_state == CircuitState.OPEN:
            self._send("error", "Authentication service unavailable")
            if self._on_session_state_change is not None:
                self._on_session_state_change(False)
        elif new_state == CircuitState.CLOSED:
            self._send("success", "Authentication service restored")
            if self._on_session_state_change is not None:
                self._on_session_state_change(True)

    # ── Recovery ─────────────────────────────────────────────────

    @property
    def refresh_in_progress(self) -> bool:
        return self._refresh_in_progress

    async def recover_session(self) -> SessionRecoveryResult:
        """Try to refresh the current session once."""
        if self._refresh_in_progress:
            return SessionRecoveryResult.failed(SessionRecoveryReason.REFRESH_IN_PROGRESS)
        if self.recovery_attempts >= self.max_retries:
            logger.warning("session.max_retries_exceeded", attempts=self.recovery_attempts)
            return SessionRecoveryResult.failed(
                SessionRecoveryReason.MAX_RETRIES_EXCEEDED, redirect=True
            )

        self._refresh_in_progress = True
        self.recovery_attempts += 1
        self._save_state()
        started = self._clock()
        try:
            result = await self.breaker.execute(self._refresh)
        except CircuitOpenError:
            logger.warning("session.circuit_open", attempts=self.recovery_attempts)
            result = SessionRecoveryResult.failed(SessionRecoveryReason.CIRCUIT_OPEN)
        except Exception as exc:
            classified = classify_error(exc, "session_recovery")
            logger.error(
                "session.recovery_error",
                category=classified.category.value,
                error=classified.technical_message,
            )
            if classified.category == ErrorCategory.AUTHENTICATION:
                result = SessionRecoveryResult.failed(SessionRecoveryReason.AUTH_ERROR, redirect=True)
            else:
                result = SessionRecoveryResult.failed(SessionRecoveryReason.UNEXPECTED_ERROR)
        finally:
            self._refresh_in_progress = False

        elapsed_ms = (self._clock() - started) * 1000
        self._metrics.record_attempt(result.recovered, elapsed_ms if result.recovered else None)
        self._save_state()
        logger.info(
            "session.recovery_attempted",
            recovered=result.recovered,
            reason=result.reason.value if result.reason else None,
            attempts=self.recovery_attempts,
        )
        return result

    async def _refresh(self) -> SessionRecoveryResult:
        session = await self.auth_client.get_session()
        if session is None:
            return SessionRecoveryResult.failed(SessionRecoveryReason.NO_SESSION, redirect=True)

        refreshed = await self.auth_client.refresh_session()
        if refreshed is None:
            return SessionRecoveryResult.failed(SessionRecoveryReason.REFRESH_FAILED, redirect=True)

        self.recovery_attempts = 0
        self._send("success", "Session recovered")
        return SessionRecoveryResult.success()

    async def handle_auth_error(self, error: object, context: str) -> SessionRecoveryResult:
        """Recover the session if ``error`` is an expired or invalid session."""
        classified = classify_error(error, context)
        if classified.category != ErrorCategory.AUTHENTICATION:
            return SessionRecoveryResult.failed(SessionRecoveryReason.NOT_AUTH_ERROR)

        message = str(error).lower() if isinstance(error, BaseException) else ""
        if not any(word in message for word in SESSION_ERROR_KEYWORDS):
            return SessionRecoveryResult.failed(SessionRecoveryReason.NOT_SESSION_ERROR)

        return await self.recover_session()

    def reset_recovery_attempts(self) -> None:
        self.recovery_attempts = 0
        self._save_state()

    @property
    def auth_service_status(self) -> CircuitState:
        return self.breaker.state

    @property
    def metrics(self) -> RecoveryMetrics:
        return self._metrics.load()

    def close(self) -> None:
        """Detach from the breaker's state notifications."""
        self._unsubscribe()


__all__ = [
    "RECOVERY_STATE_KEY",
    "AUTH_REDIRECT",
    "SESSION_ERROR_KEYWORDS",
    "AuthClient",
    "SessionRecoveryReason",
    "SessionRecoveryResult",
    "SessionRecoveryService",
]
