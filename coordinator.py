from datetime import datetime, timedelta
from typing import Any, List, Optional

from backend import PresenceTracker, Room, RoomRegistry, normalize_code, presence_tracker, room_registry
from connections import connection_hub
from errors import AlreadyBound, InvalidMessage, NotJoined, RelayTargetUnavailable, RoomMismatch, RoomNotFound
from events import (
    CAMERA_OFFLINE,
    CAMERA_ONLINE,
    PEER_JOIN_REQUEST,
    ROLE_CAMERA,
    ROLE_MONITOR,
    SIGNAL_EVENTS,
    STATUS_CHANGED,
)
from logging_config import get_logger
from schemas.rooms import StatusUpdate

logger = get_logger(__name__)


class SignalingRelay:
    """Routes offer/answer/ice-candidate between two live connections.

    Payloads are opaque. A message for a target that is no longer live is
    dropped without telling the sender.
    """

    def __init__(self, presence: PresenceTracker, hub):
        self.presence = presence
        self.hub = hub

    def relay(self, kind: str, payload: Any, sender_id: str, target_id: str) -> bool:
        if kind not in SIGNAL_EVENTS:
            raise InvalidMessage(f"Unknown signaling message: {kind}")
        if self.presence.resolve(sender_id) is None:
            raise NotJoined()

        try:
            self._resolve_target(target_id)
        except RelayTargetUnavailable:
            logger.debug(f"Dropped {kind} from {sender_id}: target {target_id} is not live")
            return False

        logger.debug(f"{kind} from {sender_id} to {target_id}")
        return self.hub.send(target_id, kind, {"payload": payload, "senderId": sender_id})

    def _resolve_target(self, target_id: str):
        target = self.presence.resolve(target_id)
        if target is None:
            raise RelayTargetUnavailable()
        return target


class RoomEventBroadcaster:
    """Room-wide fan-out. Callers hold ``room.lock`` for the duration of a call."""

    def __init__(self, hub):
        self.hub = hub

    def notify_camera_online(self, room: Room):
        for monitor_id in room.monitor_connection_ids:
            self.hub.send(monitor_id, CAMERA_ONLINE)
        logger.debug(f"camera-online sent to {len(room.monitor_connection_ids)} monitors in {room.code}")

    def notify_camera_offline(self, room: Room):
        for monitor_id in room.monitor_connection_ids:
            self.hub.send(monitor_id, CAMERA_OFFLINE)
        logger.debug(f"camera-offline sent to {len(room.monitor_connection_ids)} monitors in {room.code}")

    def notify_monitor_joined(self, room: Room, monitor_id: str) -> bool:
        if room.camera_connection_id is None:
            logger.debug(f"No camera in {room.code} yet, monitor {monitor_id} waits")
            return False
        return self.hub.send(room.camera_connection_id, PEER_JOIN_REQUEST, {"newMonitorId": monitor_id})

    def broadcast_status(self, room: Room, status_record: dict, exclude_connection_id: Optional[str] = None,
                         snapshot: Optional[str] = None) -> int:
        # State is written before any member hears about it
        previous_status = room.status
        room.status = status_record["status"]
        room.last_status_update = dict(status_record)

        message = dict(status_record)
        message["previousStatus"] = previous_status
        if snapshot is not None:
            message["snapshot"] = snapshot

        delivered = 0
        for member_id in room.members():
            if member_id == exclude_connection_id:
                continue
            if self.hub.send(member_id, STATUS_CHANGED, message):
                delivered += 1
        logger.info(f"Status updated in {room.code}: {previous_status} -> {room.status} "
                    f"({status_record.get('confidence')}%), delivered to {delivered}")
        return delivered


class LifecycleCoordinator:
    """Join/disconnect state machine tying registry, presence, relay and broadcaster together.

    A connection is Unjoined until ``join`` succeeds and Joined until
    ``disconnect``; after that the transport never calls in for it again.
    Every membership change for a room happens under that room's lock.
    """

    def __init__(self, registry: RoomRegistry, presence: PresenceTracker, hub):
        self.registry = registry
        self.presence = presence
        self.hub = hub
        self.relay = SignalingRelay(presence, hub)
        self.broadcaster = RoomEventBroadcaster(hub)

    def join(self, connection_id: str, role: str, code: str) -> dict:
        """Join ``connection_id`` to room ``code`` and return the acknowledgement for the joiner."""
        if role not in (ROLE_CAMERA, ROLE_MONITOR):
            raise InvalidMessage(f"Unknown role: {role}")
        if self.presence.resolve(connection_id) is not None:
            raise AlreadyBound()

        room = self.registry.lookup(code)
        with room.lock:
            if room.deleted:
                raise RoomNotFound(room.code)
            self.presence.bind(connection_id, role, room.code)

            if role == ROLE_CAMERA:
                previous = room.camera_connection_id
                room.camera_connection_id = connection_id
                if previous is not None and previous != connection_id:
                    # Old camera keeps its socket; its own disconnect reconciles it
                    logger.warning(f"Camera {connection_id} replaced camera {previous} in room {room.code}")
                logger.info(f"Camera {connection_id} joined room: {room.code}")
                self.broadcaster.notify_camera_online(room)
                return {"roomCode": room.code, "monitorIds": list(room.monitor_connection_ids)}

            room.add_monitor(connection_id)
            logger.info(f"Monitor {connection_id} joined room: {room.code} "
                        f"({len(room.monitor_connection_ids)} monitors)")
            self.broadcaster.notify_monitor_joined(room, connection_id)
            return {
                "roomCode": room.code,
                "cameraOnline": room.has_camera,
                "status": room.status,
                "lastStatus": room.last_status_update,
            }

    def disconnect(self, connection_id: str):
        presence = self.presence.unbind(connection_id)
        if presence is None:
            logger.debug(f"Disconnect for unjoined connection {connection_id}, nothing to clean up")
            return None

        room = self.registry.get_room(presence.room_code)
        if room is None:
            return presence

        with room.lock:
            if presence.role == ROLE_CAMERA:
                if room.camera_connection_id == connection_id:
                    room.camera_connection_id = None
                    logger.info(f"Camera {connection_id} left room {room.code}")
                    self.broadcaster.notify_camera_offline(room)
                else:
                    logger.info(f"Stale camera {connection_id} left room {room.code}, "
                                f"slot held by {room.camera_connection_id}")
            elif room.remove_monitor(connection_id):
                logger.info(f"Monitor {connection_id} left room {room.code} "
                            f"({len(room.monitor_connection_ids)} monitors)")
        return presence

    def update_status(self, connection_id: str, update: StatusUpdate) -> int:
        presence = self.presence.resolve(connection_id)
        if presence is None:
            raise NotJoined()
        if update.room_code and normalize_code(update.room_code) != presence.room_code:
            raise RoomMismatch()

        room = self.registry.lookup(presence.room_code)
        with room.lock:
            record = update.to_record(datetime.now().isoformat())
            return self.broadcaster.broadcast_status(room, record, exclude_connection_id=connection_id,
                                                     snapshot=update.snapshot)

    def sweep_expired(self, now: datetime, idle_threshold: timedelta) -> List[str]:
        """Delete idle rooms and release connections still bound to them.

        Only a replaced camera can be bound to a room with no members; once
        the room is gone it is treated as never having joined.
        """
        deleted = self.registry.sweep_expired(now, idle_threshold)
        for code in deleted:
            self.presence.evict_room(code)
        return deleted

    def relay_signal(self, kind: str, payload: Any, sender_id: str, target_id: str) -> bool:
        return self.relay.relay(kind, payload, sender_id, target_id)


coordinator = LifecycleCoordinator(room_registry, presence_tracker, connection_hub)
