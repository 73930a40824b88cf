"""Execution resilience: circuit breaker, retry with backoff, event-loop timers."""

from docsafe.execution.circuit_breaker import CircuitBreaker, CircuitOpenError, CircuitState
from docsafe.execution.retry import RetryContext, RetryPolicy, with_retry
from docsafe.execution.timers import DebounceTimer, PeriodicTimer

__all__ = [
    "CircuitBreaker",
    "CircuitOpenError",
    "CircuitState",
    "DebounceTimer",
    "PeriodicTimer",
    "RetryContext",
    "RetryPolicy",
    "with_retry",
]
