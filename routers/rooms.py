from fastapi import APIRouter, Request
from schemas.rooms import CreateRoomResponse, RoomLookupResponse, StatsResponse
from backend import room_registry, presence_tracker
from events import ROLE_CAMERA, ROLE_MONITOR
import time
from logging_config import get_logger

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/api", tags=["rooms"])

server_started_at = time.monotonic()


def _client_host(request: Request) -> str:
    return request.client.host if request and request.client else "unknown"


@rooms_router.api_route("/generate-room", methods=["GET", "POST"], response_model=CreateRoomResponse)
async def generate_room(request: Request):
    # Response: { "roomCode": "A1B2C3" }
    logger.info(f"Room creation request from {_client_host(request)}")
    room_code = room_registry.create_room()
    return CreateRoomResponse(room_code=room_code)


@rooms_router.get("/room/{code}", response_model=RoomLookupResponse, response_model_exclude_none=True)
async def lookup_room(code: str, request: Request):
    """
    Check whether a room exists.

    Returns:
    - exists: Whether the code names a live room
    - hasCamera: Whether a camera is currently attached (only when exists)
    - monitorCount: Number of monitors attached (only when exists)
    """
    details = room_registry.describe(code)
    logger.info(f"Room lookup for {code.upper()} from {_client_host(request)}: exists={details['exists']}")
    return RoomLookupResponse(**details)


@rooms_router.get("/stats", response_model=StatsResponse)
async def stats():
    return StatsResponse(
        active_rooms=room_registry.room_count(),
        active_cameras=presence_tracker.count(ROLE_CAMERA),
        active_monitors=presence_tracker.count(ROLE_MONITOR),
        uptime=round(time.monotonic() - server_started_at, 3),
    )
