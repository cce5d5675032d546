import asyncio
import re
from datetime import datetime, timedelta

import pytest

pytest.importorskip("fastapi")

from fastapi.testclient import TestClient

from app import app, handle_message, sweep_rooms_periodically
from backend import presence_tracker, room_registry
from errors import InvalidMessage


@pytest.fixture
def client():
    with TestClient(app) as client:
        yield client


def _hello(session):
    hello = session.receive_json()
    assert hello["event"] == "connected"
    return hello["data"]["connectionId"]


def _send(session, event, data):
    session.send_json({"event": event, "data": data})


class TestHttp:

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}

    def test_root_reports_active_rooms(self, client):
        client.get("/api/generate-room")
        body = client.get("/").json()
        assert body["status"] == "ok"
        assert body["activeRooms"] == 1

    def test_generate_room(self, client):
        response = client.get("/api/generate-room")
        assert response.status_code == 200
        assert re.fullmatch(r"[A-Z0-9]{6}", response.json()["roomCode"])

    def test_generate_room_accepts_post(self, client):
        response = client.post("/api/generate-room")
        assert response.status_code == 200
        assert "roomCode" in response.json()

    def test_lookup_fresh_room(self, client):
        code = client.get("/api/generate-room").json()["roomCode"]
        response = client.get(f"/api/room/{code.lower()}")
        assert response.json() == {"exists": True, "hasCamera": False, "monitorCount": 0}

    def test_lookup_unknown_room(self, client):
        assert client.get("/api/room/NOPE99").json() == {"exists": False}

    def test_stats(self, client):
        client.get("/api/generate-room")
        client.get("/api/generate-room")
        body = client.get("/api/stats").json()
        assert body["activeRooms"] == 2
        assert body["activeCameras"] == 0
        assert body["activeMonitors"] == 0
        assert body["uptime"] >= 0


class TestWebSocket:

    def test_join_unknown_room_reports_error_to_requester(self, client):
        with client.websocket_connect("/ws") as session:
            connection_id = _hello(session)
            _send(session, "join-as-camera", {"roomCode": "ZZZZZZ"})
            assert session.receive_json() == {"event": "error", "data": {"message": "Room ZZZZZZ not found"}}
            assert presence_tracker.resolve(connection_id) is None

    def test_malformed_frames_keep_connection_open(self, client):
        with client.websocket_connect("/ws") as session:
            _hello(session)
            session.send_text("not json")
            assert session.receive_json()["data"]["message"] == "Message is not valid JSON"

            _send(session, "dance", {})
            assert session.receive_json()["data"]["message"] == "Unknown event: dance"

            _send(session, "join-as-monitor", {})
            reply = session.receive_json()
            assert reply["event"] == "error"
            assert reply["data"]["message"].startswith("Invalid payload")

    def test_full_handshake(self, client):
        code = client.get("/api/generate-room").json()["roomCode"]

        with client.websocket_connect("/ws") as monitor:
            monitor_id = _hello(monitor)

            with client.websocket_connect("/ws") as camera:
                camera_id = _hello(camera)
                _send(camera, "join-as-camera", {"roomCode": code.lower()})
                assert camera.receive_json() == {"event": "joined-as-camera",
                                                 "data": {"roomCode": code, "monitorIds": []}}

                _send(monitor, "join-as-monitor", {"roomCode": code})
                ack = monitor.receive_json()
                assert ack["event"] == "joined-as-monitor"
                assert ack["data"]["cameraOnline"] is True
                assert ack["data"]["status"] == "unknown"

                assert camera.receive_json() == {"event": "peer-join-request", "data": {"newMonitorId": monitor_id}}

                _send(camera, "offer", {"payload": {"type": "offer", "sdp": "v=0"}, "targetId": monitor_id})
                assert monitor.receive_json() == {"event": "offer", "data": {
                    "payload": {"type": "offer", "sdp": "v=0"}, "senderId": camera_id}}

                _send(monitor, "answer", {"payload": {"type": "answer", "sdp": "v=0"}, "targetId": camera_id})
                assert camera.receive_json()["data"]["senderId"] == monitor_id

                _send(camera, "status-update", {"roomCode": code, "status": "awake", "confidence": 92,
                                                "notes": "Moving"})
                changed = monitor.receive_json()
                assert changed["event"] == "status-changed"
                assert changed["data"]["status"] == "awake"
                assert changed["data"]["previousStatus"] == "unknown"

                assert client.get(f"/api/room/{code}").json() == {"exists": True, "hasCamera": True,
                                                                  "monitorCount": 1}

                _send(camera, "join-as-monitor", {"roomCode": code})
                assert camera.receive_json()["event"] == "error"

            assert monitor.receive_json() == {"event": "camera-offline", "data": {}}

    def test_invalid_status_rejected(self, client):
        code = client.get("/api/generate-room").json()["roomCode"]
        with client.websocket_connect("/ws") as camera:
            _hello(camera)
            _send(camera, "join-as-camera", {"roomCode": code})
            camera.receive_json()

            _send(camera, "status-update", {"roomCode": code, "status": "crying", "confidence": 50})
            assert camera.receive_json()["event"] == "error"
            _send(camera, "status-update", {"roomCode": code, "status": "awake", "confidence": 150})
            assert camera.receive_json()["event"] == "error"
            assert room_registry.lookup(code).status == "unknown"


def test_handle_message_rejects_non_object_data():
    with pytest.raises(InvalidMessage):
        handle_message("conn-1", {"event": "offer", "data": ["not", "a", "dict"]})


def test_sweeper_removes_backdated_rooms_and_stops_on_cancel():
    stale = room_registry.create_room()
    fresh = room_registry.create_room()
    room_registry.lookup(stale).created_at = datetime.now() - timedelta(hours=1)

    async def run_sweeper():
        task = asyncio.create_task(sweep_rooms_periodically(interval_seconds=0, idle_seconds=60))
        for _ in range(100):
            await asyncio.sleep(0)
            if room_registry.get_room(stale) is None:
                break
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(run_sweeper())

    assert room_registry.get_room(stale) is None
    assert room_registry.get_room(fresh) is not None
