"""Online/offline signal consumed by the autosave scheduler."""

from __future__ import annotations

from typing import Callable, Protocol, runtime_checkable

from docsafe.core.logging import get_logger

logger = get_logger(__name__)

ConnectivityListener = Callable[[bool], None]


@runtime_checkable
class OnlineSignal(Protocol):
    """Read-only view of connectivity with change notifications."""

    @property
    def is_online(self) -> bool: ...

    def subscribe(self, listener: ConnectivityListener) -> Callable[[], None]: ...


class ConnectivityMonitor:
    """In-process connectivity flag, flipped by whoever owns the network probe."""

    def __init__(self, online: bool = True) -> None:
        self._online = online
        self._listeners: list[ConnectivityListener] = []

    @property
    def is_online(self) -> bool:
        return self._online

    def subscribe(self, listener: ConnectivityListener) -> Callable[[], None]:
        """Register ``listener(online)``; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set_online(self, online: bool) -> None:
        if online == self._online:
            return
        self._online = online
        logger.info("connectivity.changed", online=online)
        for listener in list(self._listeners):
            try:
                listener(online)
            except Exception:
                logger.exception("connectivity.listener_failed")


__all__ = ["ConnectivityListener", "OnlineSignal", "ConnectivityMonitor"]
