from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from pydantic import ValidationError
from routers.rooms import rooms_router
from backend import room_registry
from connections import connection_hub
from coordinator import coordinator
from errors import InvalidMessage, SignalingError
from schemas.rooms import JoinRequest, SignalMessage, StatusUpdate
import events
import json
import asyncio
from datetime import datetime, timedelta
from constants import ALLOWED_ORIGINS, LOG_FILE, LOG_LEVEL, ROOM_IDLE_SECONDS, SWEEP_INTERVAL_SECONDS
from logging_config import get_logger, setup_logging

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


async def sweep_rooms_periodically(interval_seconds: int = SWEEP_INTERVAL_SECONDS,
                                   idle_seconds: int = ROOM_IDLE_SECONDS):
    """Background task deleting idle rooms on a fixed interval."""
    logger.info(f"Room sweeper started: every {interval_seconds}s, idle threshold {idle_seconds}s")
    try:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                coordinator.sweep_expired(datetime.now(), timedelta(seconds=idle_seconds))
            except Exception as e:
                logger.error(f"Error sweeping rooms: {e}", exc_info=True)
    except asyncio.CancelledError:
        logger.info("Room sweeper stopped")
        raise


@asynccontextmanager
async def lifespan(app: FastAPI):
    sweeper = asyncio.create_task(sweep_rooms_periodically())
    try:
        yield
    finally:
        sweeper.cancel()
        try:
            await sweeper
        except asyncio.CancelledError:
            pass


app = FastAPI(title="Camera Monitor Signaling", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.include_router(rooms_router)

logger.info("FastAPI application initialized")


@app.get("/")
async def root():
    return {
        "status": "ok",
        "message": "Signaling server is running",
        "timestamp": datetime.now().isoformat(),
        "activeRooms": room_registry.room_count(),
    }


@app.get("/health")
async def health():
    return {"status": "healthy"}


def handle_message(connection_id: str, message: dict):
    """Dispatch one decoded client frame to the coordinator."""
    event = message.get("event")
    data = message.get("data") or {}
    if not isinstance(data, dict):
        raise InvalidMessage("Message data must be an object")

    if event in (events.JOIN_AS_CAMERA, events.JOIN_AS_MONITOR):
        request = JoinRequest.model_validate(data)
        if event == events.JOIN_AS_CAMERA:
            ack = coordinator.join(connection_id, events.ROLE_CAMERA, request.room_code)
            connection_hub.send(connection_id, events.JOINED_AS_CAMERA, ack)
        else:
            ack = coordinator.join(connection_id, events.ROLE_MONITOR, request.room_code)
            connection_hub.send(connection_id, events.JOINED_AS_MONITOR, ack)

    elif event in events.SIGNAL_EVENTS:
        signal = SignalMessage.model_validate(data)
        coordinator.relay_signal(event, signal.payload, connection_id, signal.target_id)

    elif event == events.STATUS_UPDATE:
        coordinator.update_status(connection_id, StatusUpdate.model_validate(data))

    else:
        raise InvalidMessage(f"Unknown event: {event}")


async def pump_outbox(websocket: WebSocket, outbox: asyncio.Queue, connection_id: str):
    """Drain a connection's outbound queue onto its socket."""
    while True:
        message = await outbox.get()
        try:
            await websocket.send_text(json.dumps(message))
        except Exception as e:
            logger.warning(f"Error sending to connection {connection_id}: {e}")
            return


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """Bidirectional signaling channel.

    Frames are JSON objects ``{"event": ..., "data": {...}}`` in both
    directions. The first frame sent by the server is ``connected`` with the
    id the peer is known by for the rest of the session.
    """
    await websocket.accept()
    connection_id, outbox = connection_hub.register()
    logger.info(f"Client connected: {connection_id}")
    writer = asyncio.create_task(pump_outbox(websocket, outbox, connection_id))
    connection_hub.send(connection_id, events.CONNECTED, {"connectionId": connection_id})

    message_count = 0
    try:
        while True:
            try:
                data = await websocket.receive_text()
            except WebSocketDisconnect:
                logger.info(f"WebSocket disconnected normally for connection {connection_id}")
                break
            message_count += 1
            logger.debug(f"Received message #{message_count} from connection {connection_id}")

            try:
                message = json.loads(data)
                if not isinstance(message, dict):
                    raise InvalidMessage("Message must be a JSON object")
                handle_message(connection_id, message)
            except json.JSONDecodeError:
                connection_hub.send(connection_id, events.ERROR, {"message": "Message is not valid JSON"})
            except ValidationError as e:
                logger.debug(f"Invalid payload from {connection_id}: {e}")
                connection_hub.send(connection_id, events.ERROR, {"message": f"Invalid payload: {e.errors()[0]['msg']}"})
            except SignalingError as e:
                logger.info(f"Rejected message from {connection_id}: {e.message}")
                connection_hub.send(connection_id, events.ERROR, {"message": e.message})
    except Exception as e:
        logger.error(f"WebSocket error for connection {connection_id}: {e}", exc_info=True)
    finally:
        coordinator.disconnect(connection_id)
        connection_hub.unregister(connection_id)
        writer.cancel()
        try:
            await writer
        except asyncio.CancelledError:
            pass
        logger.info(f"Client disconnected: {connection_id}")
