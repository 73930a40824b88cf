from docsafe.autosave.connectivity import ConnectivityMonitor, OnlineSignal
from docsafe.autosave.scheduler import AutosaveScheduler, AutosaveState, SaveStatus

__all__ = ["AutosaveScheduler", "AutosaveState", "ConnectivityMonitor", "OnlineSignal", "SaveStatus"]
