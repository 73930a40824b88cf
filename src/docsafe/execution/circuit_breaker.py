"""Circuit breaker pattern for fault tolerance.

Stops calling a failing dependency for a cooldown period instead of letting
every caller wait for it to fail again.

States:
    CLOSED: Normal operation, failures are counted
    OPEN: Failing fast, calls rejected without running
    HALF_OPEN: Cooldown elapsed, a limited number of probe calls allowed

Transitions:
    CLOSED    --failure_threshold failures-->       OPEN
    OPEN      --next call after reset_timeout-->    HALF_OPEN
    HALF_OPEN --success-->                          CLOSED (failure_count = 0)
    HALF_OPEN --failure-->                          OPEN

Example:
    >>> from docsafe.execution.circuit_breaker import CircuitBreaker
    >>>
    >>> breaker = CircuitBreaker(name="auth", failure_threshold=3, reset_timeout=30.0)
    >>> unsubscribe = breaker.on_state_change(lambda new, old: print(old, "->", new))
    >>> session = await breaker.execute(auth_client.refresh_session)
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar

from docsafe.core.errors import ErrorCategory, TransientError
from docsafe.core.logging import get_logger
from docsafe.core.timestamps import utc_now

logger = get_logger(__name__)

T = TypeVar("T")

StateListener = Callable[["CircuitState", "CircuitState"], None]


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "CLOSED"        # Normal operation
    OPEN = "OPEN"            # Rejecting requests
    HALF_OPEN = "HALF_OPEN"  # Testing recovery


class CircuitOpenError(TransientError):
    """Raised when the breaker rejects a call without running it."""

    default_category = ErrorCategory.SERVER

    def __init__(self, message: str = "Service unavailable (circuit breaker open)", **kwargs: Any):
        super().__init__(message, **kwargs)


@dataclass
class CircuitStats:
    """Statistics for circuit breaker monitoring."""

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    rejected_requests: int = 0
    state_changes: int = 0
    last_failure_time: datetime | None = None
    last_success_time: datetime | None = None
    last_state_change: datetime | None = None

    @property
    def failure_rate(self) -> float:
        """Calculate failure rate as percentage."""
        total = self.successful_requests + self.failed_requests
        if total == 0:
            return 0.0
        return (self.failed_requests / total) * 100


@dataclass
class CircuitBreaker:
    """Three-state breaker around asynchronous operations.

    Attributes:
        name: Identifier for this circuit (used in logs and errors)
        failure_threshold: Consecutive failures in CLOSED before opening
        reset_timeout: Seconds after the last failure before probing again
        half_open_max_calls: Probe calls allowed while HALF_OPEN
        clock: Monotonic time source in seconds
    """

    name: str = "default"
    failure_threshold: int = 5
    reset_timeout: float = 30.0
    half_open_max_calls: int = 1
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    # Internal state
    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _failure_count: int = field(default=0, init=False)
    _last_failure_time: float | None = field(default=None, init=False)
    _half_open_calls: int = field(default=0, init=False)
    _listeners: list[StateListener] = field(default_factory=list, init=False, repr=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False, repr=False)
    _stats: CircuitStats = field(default_factory=CircuitStats, init=False, repr=False)

    @property
    def state(self) -> CircuitState:
        """Current state; reading it never triggers a transition."""
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def last_failure_time(self) -> float | None:
        return self._last_failure_time

    @property
    def stats(self) -> CircuitStats:
        """Get circuit statistics."""
        return self._stats

    def snapshot(self) -> dict[str, Any]:
        """``{status, failureCount, lastFailureTime}`` for diagnostics."""
        return {
            "status": self._state.value,
            "failureCount": self._failure_count,
            "lastFailureTime": self._last_failure_time,
        }

    # ── Listeners ────────────────────────────────────────────────

    def on_state_change(self, listener: StateListener) -> Callable[[], None]:
        """Register ``listener(new_state, old_state)``; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, new_state: CircuitState, old_state: CircuitState) -> None:
        for listener in list(self._listeners):
            try:
                listener(new_state, old_state)
            except Exception:
                logger.exception(
                    "circuit_breaker.listener_failed",
                    circuit=self.name,
                    new_state=new_state.value,
                )

    # ── State machine ────────────────────────────────────────────

    def _check_state_transition(self) -> None:
        """Move OPEN to HALF_OPEN once the cooldown has elapsed."""
        if self._state == CircuitState.OPEN and self._last_failure_time is not None:
            if self.clock() - self._last_failure_time >= self.reset_timeout:
                self._transition_to(CircuitState.HALF_OPEN)

    def _transition_to(self, new_state: CircuitState) -> None:
        old_state = self._state
        if old_state == new_state:
            return
        self._state = new_state
        self._stats.state_changes += 1
        self._stats.last_state_change = utc_now()

        if new_state == CircuitState.CLOSED:
            self._failure_count = 0
        self._half_open_calls = 0

        log = logger.warning if new_state == CircuitState.OPEN else logger.info
        log(
            "circuit_breaker.state_changed",
            circuit=self.name,
            old_state=old_state.value,
            new_state=new_state.value,
            failure_count=self._failure_count,
        )
        self._notify(new_state, old_state)

    def allow_request(self) -> bool:
        """Check (and reserve) permission for one call.

        Returns:
            True if the call can proceed, False if it must be rejected
        """
        with self._lock:
            self._check_state_transition()
            self._stats.total_requests += 1

            if self._state == CircuitState.CLOSED:
                return True

            if self._state == CircuitState.OPEN:
                self._stats.rejected_requests += 1
                return False

            # Half-open: allow limited requests
            if self._half_open_calls < self.half_open_max_calls:
                self._half_open_calls += 1
                return True

            self._stats.rejected_requests += 1
            return False

    def record_success(self) -> None:
        """Record a successful call."""
        with self._lock:
            self._stats.successful_requests += 1
            self._stats.last_success_time = utc_now()

            if self._state == CircuitState.HALF_OPEN:
                self._transition_to(CircuitState.CLOSED)
            elif self._state == CircuitState.CLOSED:
                self._failure_count = 0

    def record_failure(self, error: Exception | None = None) -> None:
        """Record a failed call."""
        with self._lock:
            self._failure_count += 1
            self._stats.failed_requests += 1
            self._stats.last_failure_time = utc_now()
            self._last_failure_time = self.clock()

            if self._state == CircuitState.CLOSED:
                if self._failure_count >= self.failure_threshold:
                    self._transition_to(CircuitState.OPEN)

            elif self._state == CircuitState.HALF_OPEN:
                # Any failure in half-open reopens the circuit
                self._transition_to(CircuitState.OPEN)

            logger.debug(
                "circuit_breaker.failure_recorded",
                circuit=self.name,
                failure_count=self._failure_count,
                error=str(error) if error is not None else None,
            )

    def reset(self) -> None:
        """Reset circuit to closed state."""
        with self._lock:
            self._transition_to(CircuitState.CLOSED)
            self._failure_count = 0
            self._last_failure_time = None

    def force_open(self) -> None:
        """Force circuit to open state (for maintenance and tests)."""
        with self._lock:
            self._last_failure_time = self.clock()
            self._transition_to(CircuitState.OPEN)

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run ``operation`` through the breaker.

        Raises:
            CircuitOpenError: Rejected without running (OPEN, or half-open budget spent)
            Exception: Whatever ``operation`` raised, after it was recorded
        """
        if not self.allow_request():
            if self._state == CircuitState.HALF_OPEN:
                message = "Service unavailable (circuit breaker half-open limit reached)"
            else:
                message = "Service unavailable (circuit breaker open)"
            raise CircuitOpenError(message).with_context(operation=self.name)

        try:
            result = await operation()
        except Exception as e:
            self.record_failure(e)
            raise
        self.record_success()
        return result


__all__ = [
    "CircuitState",
    "CircuitOpenError",
    "CircuitStats",
    "CircuitBreaker",
    "StateListener",
]
