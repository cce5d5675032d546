from pydantic import BaseModel, ConfigDict, Field
from typing import Annotated, Any, Literal, Optional, Union
from events import STATUS_AWAKE, STATUS_SLEEPING, STATUS_UNKNOWN


# Echoed back as sent, so an int stays an int
Confidence = Union[Annotated[int, Field(ge=0, le=100)], Annotated[float, Field(ge=0, le=100)]]


class WireModel(BaseModel):
    # Wire format is camelCase, Python side is snake_case
    model_config = ConfigDict(populate_by_name=True)


class CreateRoomResponse(WireModel):
    room_code: str = Field(alias="roomCode")

class RoomLookupResponse(WireModel):
    exists: bool
    has_camera: Optional[bool] = Field(default=None, alias="hasCamera")
    monitor_count: Optional[int] = Field(default=None, alias="monitorCount")

class StatsResponse(WireModel):
    active_rooms: int = Field(alias="activeRooms")
    active_cameras: int = Field(alias="activeCameras")
    active_monitors: int = Field(alias="activeMonitors")
    uptime: float


class JoinRequest(WireModel):
    room_code: str = Field(alias="roomCode", min_length=1)

class SignalMessage(WireModel):
    payload: Any = None
    target_id: str = Field(alias="targetId", min_length=1)

class StatusUpdate(WireModel):
    room_code: Optional[str] = Field(default=None, alias="roomCode")
    status: Literal[STATUS_UNKNOWN, STATUS_SLEEPING, STATUS_AWAKE]
    confidence: Confidence = 0
    notes: Optional[str] = ""
    snapshot: Optional[str] = None
    position: Optional[str] = None
    alert: Optional[bool] = None

    def to_record(self, timestamp: str) -> dict:
        """The stored ``last_status_update`` record for a room."""
        record = {
            "status": self.status,
            "confidence": self.confidence,
            "notes": self.notes,
            "timestamp": timestamp,
        }
        if self.position is not None:
            record["position"] = self.position
        if self.alert is not None:
            record["alert"] = self.alert
        return record
