"""Shared fixtures: fresh registry/presence state and a hub that records deliveries."""

from collections import defaultdict

import pytest

from backend import PresenceTracker, RoomRegistry, presence_tracker, room_registry
from coordinator import LifecycleCoordinator


class RecordingHub:
    """Stands in for the connection hub; every connection is live unless marked gone."""

    def __init__(self):
        self.sent = defaultdict(list)
        self.gone = set()

    def send(self, connection_id, event, data=None):
        if connection_id in self.gone:
            return False
        self.sent[connection_id].append((event, data or {}))
        return True

    def events_for(self, connection_id, event=None):
        return [(name, data) for name, data in self.sent[connection_id] if event is None or name == event]


@pytest.fixture
def hub():
    return RecordingHub()


@pytest.fixture
def registry():
    return RoomRegistry()


@pytest.fixture
def presence():
    return PresenceTracker()


@pytest.fixture
def coordinator(registry, presence, hub):
    return LifecycleCoordinator(registry, presence, hub)


@pytest.fixture(autouse=True)
def reset_global_state():
    yield
    room_registry.clear()
    presence_tracker.clear()
