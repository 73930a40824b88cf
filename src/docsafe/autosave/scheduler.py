"""
Autosave scheduler - debounced saves with retry, backoff and offline tracking.

Manifesto:
    Saving should be invisible while it works and loud exactly once when
    it does not:

    - **Debounced:** every pending edit re-arms one timer
    - **Retried quietly:** network and timeout failures are retried with
      exponential backoff before anyone is told
    - **One notification:** persistent failure notifies once, then stays
      quiet until a save succeeds again
    - **Nothing lost:** ``pending_changes`` stays ``True`` until a save lands

Architecture:
    ::

        content_changed(text)
            pending?  ── no ──► cancel timer
               │ yes
               ├─ offline ──► status OFFLINE (no timer)
               └─ online  ──► DebounceTimer.arm(next_delay)
                                    │
                                    ▼
                             _save_now()  (ignored while a save is in flight)
                                 SAVING ──► with_retry(save, is_transient_save_error)
                                              ├─ retry   ──► RETRY, retry_count += 1
                                              ├─ success ──► SAVED, baseline = text
                                              └─ failure ──► ERROR, notify once,
                                                             re-arm with min(interval * 2^retry_count, max_delay)

        connectivity: offline + pending ──► OFFLINE
                      online  + pending ──► save immediately

    States: ``idle -> saving -> {saved | retry | error} -> idle``. A new edit
    moves SAVED back to IDLE; ERROR is kept until the next attempt so the
    backoff delay applies. A failure that is not transient is not re-armed
    until new input arrives. ``offline`` runs alongside while connectivity is
    down and work is pending.

Tags:
    autosave, debounce, retry, offline, docsafe

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable

from docsafe.autosave.connectivity import OnlineSignal
from docsafe.core.errors import classify_error, is_transient_save_error
from docsafe.core.logging import get_logger
from docsafe.core.models import DEFAULT_TITLE
from docsafe.core.preferences import PreferenceStore
from docsafe.core.settings import DocsafeSettings, get_settings
from docsafe.core.timestamps import utc_now
from docsafe.execution.retry import RetryContext, RetryPolicy, Sleeper
from docsafe.execution.timers import DebounceTimer

logger = get_logger(__name__)

SaveCallable = Callable[[], Awaitable[Any]]
NotifyCallback = Callable[[str, str], None]


class SaveStatus(str, Enum):
    IDLE = "idle"
    SAVING = "saving"
    SAVED = "saved"
    RETRY = "retry"
    ERROR = "error"
    OFFLINE = "offline"


@dataclass
class AutosaveState:
    """Transient autosave state reported to the UI."""

    status: SaveStatus = SaveStatus.IDLE
    last_saved: datetime | None = None
    pending_changes: bool = False
    retry_count: int = 0


class AutosaveScheduler:
    """Debounces edits into saves through the ``save`` collaborator.

    Args:
        save: Zero-argument coroutine function that persists the current
            document; raises on failure and is safe to retry
        initial_content: Content as loaded, the first saved baseline
        interval: Debounce interval in seconds; overrides the stored
            preference and the settings default
        preferences: Store holding the user's preferred interval
        connectivity: Online signal; ``None`` means always online
        settings: Defaults for interval, retries and delays
        enabled: Disabled schedulers never arm timers or save
        notify: ``notify(level, message)`` sink for user-facing notices
        on_status_change: Called with the state after every status change
        sleep: Awaitable sleep used between retries
    """

    def __init__(
        self,
        save: SaveCallable,
        *,
        initial_content: str = "",
        title: str = DEFAULT_TITLE,
        interval: float | None = None,
        preferences: PreferenceStore | None = None,
        connectivity: OnlineSignal | None = None,
        settings: DocsafeSettings | None = None,
        max_retries: int | None = None,
        retry_base_delay: float | None = None,
        max_delay: float | None = None,
        enabled: bool = True,
        notify: NotifyCallback | None = None,
        on_status_change: Callable[[AutosaveState], None] | None = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        settings = settings or get_settings()
        self._save = save
        self.title = title
        self._interval = interval
        self._preferences = preferences
        self._default_interval = settings.autosave_interval
        self.max_retries = max_retries or settings.autosave_max_retries
        self.retry_base_delay = (
            retry_base_delay if retry_base_delay is not None else settings.autosave_retry_base_delay
        )
        self.max_delay = max_delay or settings.autosave_max_delay
        self._enabled = enabled
        self._notify = notify
        self._on_status_change = on_status_change
        self._sleep = sleep

        self.state = AutosaveState()
        self._content = initial_content
        self._loaded_content = initial_content
        self._saved_content = initial_content
        self._saving = False
        self._failure_notified = False
        self._idle = asyncio.Event()
        self._idle.set()
        self._tasks: set[asyncio.Task] = set()

        self._timer = DebounceTimer(self._save_now, name="autosave")
        self._connectivity = connectivity
        self._unsubscribe = (
            connectivity.subscribe(self._on_connectivity_change) if connectivity is not None else None
        )

    # ── Properties ───────────────────────────────────────────────

    @property
    def effective_interval(self) -> float:
        """Explicit interval, else the stored preference, else the settings default."""
        if self._interval is not None:
            return self._interval
        if self._preferences is not None:
            preferred = self._preferences.autosave_interval
            if preferred is not None:
                return preferred
        return self._default_interval

    @property
    def enabled(self) -> bool:
        return self._enabled

    @enabled.setter
    def enabled(self, value: bool) -> None:
        self._enabled = value
        if not value:
            self._timer.cancel()

    @property
    def is_online(self) -> bool:
        return self._connectivity is None or self._connectivity.is_online

    @property
    def is_saving(self) -> bool:
        return self._saving

    @property
    def has_changes(self) -> bool:
        return self._is_pending(self._content)

    def _is_pending(self, content: str) -> bool:
        return (
            content != self._loaded_content
            and content != self._saved_content
            and content.strip() != ""
        )

    def next_delay(self) -> float:
        """Debounce delay for the next attempt; lengthened while in ERROR."""
        if self.state.status == SaveStatus.ERROR:
            return min(self.effective_interval * (2 ** self.state.retry_count), self.max_delay)
        return self.effective_interval

    def _set_status(self, status: SaveStatus) -> None:
        if status == self.state.status:
            return
        self.state.status = status
        if self._on_status_change is not None:
            self._on_status_change(replace(self.state))

    # ── Editor input ─────────────────────────────────────────────

    def load(self, content: str) -> None:
        """Adopt freshly loaded content as the new baseline."""
        self._timer.cancel()
        self._content = content
        self._loaded_content = content
        self._saved_content = content
        self.state.pending_changes = False
        self.state.retry_count = 0
        self._failure_notified = False
        self._set_status(SaveStatus.IDLE)

    def content_changed(self, content: str) -> None:
        """Record an edit and (re)arm the debounce timer if it needs saving."""
        self._content = content
        self.state.pending_changes = self._is_pending(content)
        if not self._enabled:
            return
        if not self.state.pending_changes:
            self._timer.cancel()
            return
        if not self.is_online:
            self._timer.cancel()
            self._set_status(SaveStatus.OFFLINE)
            return
        if self.state.status == SaveStatus.SAVED:
            self._set_status(SaveStatus.IDLE)
        self._timer.arm(self.next_delay())

    # ── Saving ───────────────────────────────────────────────────

    async def trigger_save(self) -> None:
        """Save now instead of waiting for the timer."""
        self._timer.cancel()
        await self._save_now()

    async def _save_now(self) -> None:
        if not self._enabled or self._saving:
            return
        if not self._is_pending(self._content):
            self.state.pending_changes = False
            return
        if not self.is_online:
            self._set_status(SaveStatus.OFFLINE)
            return

        content = self._content
        self._saving = True
        self._idle.clear()
        self._set_status(SaveStatus.SAVING)
        prior_retries = self.state.retry_count

        def on_retry(failed: int) -> None:
            self.state.retry_count = prior_retries + failed
            self._set_status(SaveStatus.RETRY)

        policy = RetryPolicy(
            max_attempts=self.max_retries,
            base_delay=self.retry_base_delay,
            max_delay=self.max_delay,
            is_retryable=is_transient_save_error,
        )
        ctx = RetryContext(policy=policy, on_retry=on_retry, sleep=self._sleep)
        rearm = True
        try:
            await ctx.run(self._save)
        except Exception as exc:
            self.state.retry_count = prior_retries + ctx.attempt
            self._handle_failure(exc)
            # Rejected saves wait for new input instead of being resent.
            rearm = is_transient_save_error(exc) or self._content != content
        else:
            self._handle_success(content)
        finally:
            self._saving = False
            self._idle.set()

        if rearm and self._enabled and self.state.pending_changes and self.is_online:
            self._timer.arm(self.next_delay())

    def _handle_success(self, content: str) -> None:
        self._saved_content = content
        self.state.last_saved = utc_now()
        self.state.retry_count = 0
        self._failure_notified = False
        self.state.pending_changes = self._is_pending(self._content)
        self._set_status(SaveStatus.SAVED)
        logger.info("autosave.saved", title=self.title, size=len(content))

    def _handle_failure(self, exc: Exception) -> None:
        self.state.pending_changes = True
        if not self.is_online:
            self._set_status(SaveStatus.OFFLINE)
            logger.info("autosave.deferred_offline", title=self.title)
            return

        classified = classify_error(exc, "autosave")
        self._set_status(SaveStatus.ERROR)
        logger.error(
            "autosave.failed",
            title=self.title,
            category=classified.category.value,
            retry_count=self.state.retry_count,
            error=classified.technical_message,
        )
        if not self._failure_notified:
            self._failure_notified = True
            if self._notify is not None:
                self._notify("error", "Autosave failed")

    # ── Connectivity ─────────────────────────────────────────────

    def _on_connectivity_change(self, online: bool) -> None:
        if not online:
            if self.state.pending_changes and not self._saving:
                self._timer.cancel()
                self._set_status(SaveStatus.OFFLINE)
            return

        if self.state.status == SaveStatus.OFFLINE:
            self._set_status(SaveStatus.IDLE)
        if self._enabled and self.state.pending_changes and not self._saving:
            self._timer.cancel()
            logger.info("autosave.back_online", title=self.title)
            task = asyncio.get_running_loop().create_task(self._save_now())
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    # ── Lifecycle ────────────────────────────────────────────────

    async def drain(self) -> None:
        """Wait for an in-flight or just-triggered save to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self._idle.wait()

    def close(self) -> None:
        """Cancel timers and pending work and stop listening to connectivity."""
        self._timer.cancel()
        for task in list(self._tasks):
            task.cancel()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def __aenter__(self) -> AutosaveScheduler:
        return self

    async def __aexit__(self, *args: object) -> None:
        self.close()


__all__ = ["SaveStatus", "AutosaveState", "AutosaveScheduler", "SaveCallable"]
