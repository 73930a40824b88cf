"""
Shared pytest fixtures for docsafe tests.

This module provides:
- In-memory storage and backup store fixtures
- A controllable monotonic clock and wall clock
- Fake collaborators: auth client, save callable
- Settings isolated from the developer's environment

Usage:
    Fixtures are auto-discovered by pytest; request them by name.

    def test_something(store, fake_clock):
        ...
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from docsafe.core.backups import BackupStore
from docsafe.core.settings import DocsafeSettings, clear_settings_cache
from docsafe.core.storage import InMemoryStorage

# =============================================================================
# Clocks
# =============================================================================


class FakeClock:
    """Monotonic seconds that only move when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeWallClock:
    """Timezone-aware wall clock for record timestamps."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 5, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def wall_clock() -> FakeWallClock:
    return FakeWallClock()


# =============================================================================
# Storage
# =============================================================================


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def store(storage: InMemoryStorage, wall_clock: FakeWallClock) -> BackupStore:
    return BackupStore(storage, clock=wall_clock)


# =============================================================================
# Settings
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    """Point settings at a temp dir and drop the cached instance around each test."""
    monkeypatch.setenv("DOCSAFE_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.delenv("DOCSAFE_DATABASE_PATH", raising=False)
    monkeypatch.delenv("DOCSAFE_AUTOSAVE_INTERVAL", raising=False)
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def settings(tmp_path) -> DocsafeSettings:
    return DocsafeSettings(data_dir=tmp_path / "data", _env_file=None)


# =============================================================================
# Fake collaborators
# =============================================================================


class FakeAuthClient:
    """Scriptable auth backend.

    ``session`` is returned by ``get_session``; ``refresh_results`` is
    consumed one item per ``refresh_session`` call (exceptions are raised),
    falling back to ``default_refresh`` once empty.
    """

    def __init__(self, session: Any = "session-1") -> None:
        self.session = session
        self.refresh_results: list[Any] = []
        self.default_refresh: Any = "session-2"
        self.get_calls = 0
        self.refresh_calls = 0

    async def get_session(self) -> Any:
        self.get_calls += 1
        return self.session

    async def refresh_session(self) -> Any:
        self.refresh_calls += 1
        result = self.refresh_results.pop(0) if self.refresh_results else self.default_refresh
        if isinstance(result, BaseException):
            raise result
        return result


@pytest.fixture
def auth_client() -> FakeAuthClient:
    return FakeAuthClient()


class FakeSave:
    """Save collaborator that fails with queued errors before succeeding."""

    def __init__(self) -> None:
        self.calls = 0
        self.errors: list[Exception] = []
        self.always_fail: Exception | None = None

    async def __call__(self) -> None:
        self.calls += 1
        if self.always_fail is not None:
            raise self.always_fail
        if self.errors:
            raise self.errors.pop(0)


@pytest.fixture
def fake_save() -> FakeSave:
    return FakeSave()


class Notifications:
    """Collects ``notify(level, message)`` calls."""

    def __init__(self) -> None:
        self.items: list[tuple[str, str]] = []

    def __call__(self, level: str, message: str) -> None:
        self.items.append((level, message))

    @property
    def messages(self) -> list[str]:
        return [message for _, message in self.items]


@pytest.fixture
def notifications() -> Notifications:
    return Notifications()


async def _no_sleep(delay: float) -> None:
    return None


@pytest.fixture
def no_sleep():
    """Retry sleeper that returns immediately."""
    return _no_sleep
