"""Tests for the circuit breaker."""

import pytest

from docsafe.core.errors import ErrorCategory
from docsafe.execution.circuit_breaker import CircuitBreaker, CircuitOpenError, CircuitState


class _Boom(Exception):
    pass


async def _fail():
    raise _Boom("down")


async def _ok():
    return "ok"


@pytest.fixture
def breaker(fake_clock):
    return CircuitBreaker(
        name="test", failure_threshold=3, reset_timeout=30.0, half_open_max_calls=1, clock=fake_clock
    )


async def _trip(breaker: CircuitBreaker, times: int) -> None:
    for _ in range(times):
        with pytest.raises(_Boom):
            await breaker.execute(_fail)


class TestTransitions:
    """Tests for the CLOSED → OPEN → HALF_OPEN → CLOSED cycle."""

    @pytest.mark.asyncio
    async def test_opens_at_threshold(self, breaker):
        """threshold consecutive failures open the circuit."""
        await _trip(breaker, 2)
        assert breaker.state == CircuitState.CLOSED
        await _trip(breaker, 1)
        assert breaker.state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_open_rejects_without_invoking(self, breaker):
        """While OPEN the operation is not called."""
        await _trip(breaker, 3)
        calls = 0

        async def counted():
            nonlocal calls
            calls += 1
            return "ok"

        with pytest.raises(CircuitOpenError) as exc_info:
            await breaker.execute(counted)
        assert calls == 0
        assert exc_info.value.category == ErrorCategory.SERVER
        assert "open" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_half_open_success_closes(self, breaker, fake_clock):
        """After the cooldown one success closes the circuit and clears failures."""
        await _trip(breaker, 3)
        fake_clock.advance(30.0)
        assert await breaker.execute(_ok) == "ok"
        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_half_open_failure_reopens(self, breaker, fake_clock):
        """A failed probe re-opens immediately."""
        await _trip(breaker, 3)
        fake_clock.advance(31.0)
        await _trip(breaker, 1)
        assert breaker.state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_cooldown_not_elapsed(self, breaker, fake_clock):
        """Before reset_timeout the circuit stays OPEN."""
        await _trip(breaker, 3)
        fake_clock.advance(29.0)
        with pytest.raises(CircuitOpenError):
            await breaker.execute(_ok)
        assert breaker.state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_success_resets_count_in_closed(self, breaker):
        """Failures must be consecutive to open the circuit."""
        await _trip(breaker, 2)
        await breaker.execute(_ok)
        await _trip(breaker, 2)
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_half_open_budget(self, breaker, fake_clock):
        """Only half_open_max_calls probes are admitted."""
        await _trip(breaker, 3)
        fake_clock.advance(30.0)
        assert breaker.allow_request() is True
        assert breaker.state == CircuitState.HALF_OPEN
        assert breaker.allow_request() is False

    def test_state_read_has_no_side_effects(self, breaker, fake_clock):
        """Reading state after the cooldown does not move to HALF_OPEN."""
        breaker.force_open()
        fake_clock.advance(60.0)
        assert breaker.state == CircuitState.OPEN


class TestListeners:
    """Tests for state-change notifications."""

    @pytest.mark.asyncio
    async def test_listener_sees_transitions(self, breaker, fake_clock):
        """Listeners receive (new, old) pairs."""
        seen = []
        breaker.on_state_change(lambda new, old: seen.append((new, old)))
        await _trip(breaker, 3)
        fake_clock.advance(30.0)
        await breaker.execute(_ok)
        assert seen == [
            (CircuitState.OPEN, CircuitState.CLOSED),
            (CircuitState.HALF_OPEN, CircuitState.OPEN),
            (CircuitState.CLOSED, CircuitState.HALF_OPEN),
        ]

    def test_unsubscribe(self, breaker):
        """An unsubscribed listener is no longer called."""
        seen = []
        unsubscribe = breaker.on_state_change(lambda new, old: seen.append(new))
        unsubscribe()
        breaker.force_open()
        assert seen == []

    def test_failing_listener_does_not_break_breaker(self, breaker):
        """Listener exceptions are contained."""

        def bad(new, old):
            raise RuntimeError("listener bug")

        breaker.on_state_change(bad)
        breaker.force_open()
        assert breaker.state == CircuitState.OPEN

    def test_reset(self, breaker):
        """reset closes the circuit and clears counters."""
        breaker.force_open()
        breaker.reset()
        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0
        assert breaker.snapshot() == {"status": "CLOSED", "failureCount": 0, "lastFailureTime": None}
