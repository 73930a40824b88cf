"""Tests for the connectivity monitor."""

from docsafe.autosave.connectivity import ConnectivityMonitor, OnlineSignal


class TestConnectivityMonitor:
    """Tests for ConnectivityMonitor."""

    def test_is_online_signal(self):
        """The monitor satisfies the OnlineSignal protocol."""
        assert isinstance(ConnectivityMonitor(), OnlineSignal)

    def test_notifies_on_change_only(self):
        """Listeners hear transitions, not repeats."""
        monitor = ConnectivityMonitor()
        seen = []
        monitor.subscribe(seen.append)
        monitor.set_online(True)
        monitor.set_online(False)
        monitor.set_online(False)
        monitor.set_online(True)
        assert seen == [False, True]
        assert monitor.is_online

    def test_unsubscribe(self):
        """Unsubscribed listeners are skipped."""
        monitor = ConnectivityMonitor()
        seen = []
        unsubscribe = monitor.subscribe(seen.append)
        unsubscribe()
        unsubscribe()
        monitor.set_online(False)
        assert seen == []

    def test_failing_listener_isolated(self):
        """One failing listener does not starve the others."""
        monitor = ConnectivityMonitor()
        seen = []

        def bad(online):
            raise RuntimeError("listener bug")

        monitor.subscribe(bad)
        monitor.subscribe(seen.append)
        monitor.set_online(False)
        assert seen == [False]
