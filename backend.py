import random
import string
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from constants import ROOM_CODE_LENGTH
from errors import AlreadyBound, RoomNotFound
from events import ROLE_CAMERA, ROLE_MONITOR, STATUS_UNKNOWN
from logging_config import get_logger

logger = get_logger(__name__)


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def generate_room_code(length: int = ROOM_CODE_LENGTH) -> str:
    return ''.join(random.choices(string.ascii_uppercase + string.digits, k=length))


@dataclass
class Room:
    code: str
    created_at: datetime = field(default_factory=datetime.now)
    camera_connection_id: Optional[str] = None
    # Insertion ordered, never holds the same id twice
    monitor_connection_ids: List[str] = field(default_factory=list)
    status: str = STATUS_UNKNOWN
    last_status_update: Optional[dict] = None
    deleted: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def has_camera(self) -> bool:
        return self.camera_connection_id is not None

    @property
    def is_empty(self) -> bool:
        return self.camera_connection_id is None and not self.monitor_connection_ids

    def add_monitor(self, connection_id: str):
        if connection_id not in self.monitor_connection_ids:
            self.monitor_connection_ids.append(connection_id)

    def remove_monitor(self, connection_id: str) -> bool:
        if connection_id in self.monitor_connection_ids:
            self.monitor_connection_ids.remove(connection_id)
            return True
        return False

    def members(self) -> List[str]:
        members = list(self.monitor_connection_ids)
        if self.camera_connection_id is not None:
            members.insert(0, self.camera_connection_id)
        return members


@dataclass(frozen=True)
class Presence:
    connection_id: str
    role: str
    room_code: str


class RoomRegistry:
    """Rooms keyed by code. Membership changes are made by callers holding ``room.lock``."""

    def __init__(self, code_length: int = ROOM_CODE_LENGTH):
        self.code_length = code_length
        self._rooms: Dict[str, Room] = {}
        self._lock = threading.Lock()

    def create_room(self) -> str:
        with self._lock:
            code = generate_room_code(self.code_length)
            while code in self._rooms:
                logger.debug(f"Room code collision on {code}, regenerating")
                code = generate_room_code(self.code_length)
            self._rooms[code] = Room(code=code)
        logger.info(f"Room created: {code}")
        return code

    def lookup(self, code: str) -> Room:
        normalized = normalize_code(code)
        with self._lock:
            room = self._rooms.get(normalized)
        if room is None:
            logger.debug(f"Room {normalized} not found")
            raise RoomNotFound(normalized)
        return room

    def get_room(self, code: str) -> Optional[Room]:
        try:
            return self.lookup(code)
        except RoomNotFound:
            return None

    def describe(self, code: str) -> dict:
        room = self.get_room(code)
        if room is None:
            return {"exists": False}
        with room.lock:
            if room.deleted:
                return {"exists": False}
            return {
                "exists": True,
                "hasCamera": room.has_camera,
                "monitorCount": len(room.monitor_connection_ids),
            }

    def sweep_expired(self, now: datetime, idle_threshold: timedelta) -> List[str]:
        """Delete rooms older than ``idle_threshold`` that have no camera and no monitors."""
        cutoff = now - idle_threshold
        with self._lock:
            candidates = [room for room in self._rooms.values() if room.created_at < cutoff]

        deleted = []
        for room in candidates:
            # Same per-room exclusivity as join/disconnect so a mid-join room survives
            with room.lock:
                if room.deleted or not room.is_empty:
                    continue
                room.deleted = True
                with self._lock:
                    self._rooms.pop(room.code, None)
            deleted.append(room.code)
            logger.info(f"Cleaned up room: {room.code}")

        if deleted:
            logger.info(f"Sweep removed {len(deleted)} idle rooms, {self.room_count()} remain")
        return deleted

    def room_count(self) -> int:
        with self._lock:
            return len(self._rooms)

    def clear(self):
        with self._lock:
            self._rooms.clear()


class PresenceTracker:
    """Maps a live connection id to the role and room it joined with."""

    def __init__(self):
        self._presences: Dict[str, Presence] = {}
        self._lock = threading.Lock()

    def bind(self, connection_id: str, role: str, room_code: str) -> Presence:
        if role not in (ROLE_CAMERA, ROLE_MONITOR):
            raise ValueError(f"Unknown role: {role}")
        with self._lock:
            if connection_id in self._presences:
                raise AlreadyBound()
            presence = Presence(connection_id=connection_id, role=role, room_code=room_code)
            self._presences[connection_id] = presence
        logger.debug(f"Bound {connection_id} as {role} in room {room_code}")
        return presence

    def resolve(self, connection_id: str) -> Optional[Presence]:
        with self._lock:
            return self._presences.get(connection_id)

    def unbind(self, connection_id: str) -> Optional[Presence]:
        with self._lock:
            presence = self._presences.pop(connection_id, None)
        if presence:
            logger.debug(f"Unbound {connection_id} ({presence.role}) from room {presence.room_code}")
        return presence

    def evict_room(self, room_code: str) -> List[Presence]:
        """Drop every binding that still points at ``room_code``."""
        with self._lock:
            evicted = [presence for presence in self._presences.values() if presence.room_code == room_code]
            for presence in evicted:
                del self._presences[presence.connection_id]
        for presence in evicted:
            logger.info(f"Evicted {presence.role} {presence.connection_id} from deleted room {room_code}")
        return evicted

    def count(self, role: Optional[str] = None) -> int:
        with self._lock:
            if role is None:
                return len(self._presences)
            return sum(1 for presence in self._presences.values() if presence.role == role)

    def clear(self):
        with self._lock:
            self._presences.clear()


room_registry = RoomRegistry()
presence_tracker = PresenceTracker()
