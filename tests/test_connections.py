import pytest

from connections import ConnectionHub


def test_register_assigns_unique_ids():
    hub = ConnectionHub()
    ids = {hub.register()[0] for _ in range(10)}
    assert len(ids) == 10
    assert len(hub) == 10


def test_register_rejects_duplicate_id():
    hub = ConnectionHub()
    hub.register("conn-1")
    with pytest.raises(ValueError):
        hub.register("conn-1")


def test_send_enqueues_event_envelope():
    hub = ConnectionHub()
    connection_id, outbox = hub.register()

    assert hub.send(connection_id, "camera-online") is True
    assert hub.send(connection_id, "peer-join-request", {"newMonitorId": "mon-1"}) is True

    assert outbox.get_nowait() == {"event": "camera-online", "data": {}}
    assert outbox.get_nowait() == {"event": "peer-join-request", "data": {"newMonitorId": "mon-1"}}


def test_full_outbox_drops_without_blocking():
    hub = ConnectionHub(queue_size=2)
    connection_id, outbox = hub.register()

    assert hub.send(connection_id, "ice-candidate", {"payload": 1})
    assert hub.send(connection_id, "ice-candidate", {"payload": 2})
    assert hub.send(connection_id, "ice-candidate", {"payload": 3}) is False

    assert outbox.qsize() == 2
    assert outbox.get_nowait()["data"] == {"payload": 1}


def test_send_to_unregistered_connection():
    hub = ConnectionHub()
    connection_id, _ = hub.register()
    hub.unregister(connection_id)
    hub.unregister(connection_id)

    assert len(hub) == 0
    assert hub.send(connection_id, "offer", {}) is False
