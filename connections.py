import asyncio
import threading
import uuid
from typing import Dict, Optional

from constants import OUTBOUND_QUEUE_SIZE
from logging_config import get_logger

logger = get_logger(__name__)


class ConnectionHub:
    """Outbound channel per live connection.

    Every message for a connection goes through ``send``, which never blocks:
    it enqueues onto that connection's bounded queue and drops the message if
    the queue is full. The transport drains the queue on its own task.
    """

    def __init__(self, queue_size: int = OUTBOUND_QUEUE_SIZE):
        self.queue_size = queue_size
        self._outboxes: Dict[str, asyncio.Queue] = {}
        self._lock = threading.Lock()

    def register(self, connection_id: Optional[str] = None):
        connection_id = connection_id or uuid.uuid4().hex
        outbox = asyncio.Queue(maxsize=self.queue_size)
        with self._lock:
            if connection_id in self._outboxes:
                raise ValueError(f"Connection id {connection_id} already registered")
            self._outboxes[connection_id] = outbox
        logger.debug(f"Registered connection {connection_id} (live connections: {len(self)})")
        return connection_id, outbox

    def unregister(self, connection_id: str):
        with self._lock:
            outbox = self._outboxes.pop(connection_id, None)
        if outbox is not None:
            logger.debug(f"Unregistered connection {connection_id}")

    def send(self, connection_id: str, event: str, data: Optional[dict] = None) -> bool:
        with self._lock:
            outbox = self._outboxes.get(connection_id)
        if outbox is None:
            logger.debug(f"Dropping {event} for {connection_id}: connection is gone")
            return False
        try:
            outbox.put_nowait({"event": event, "data": data or {}})
        except asyncio.QueueFull:
            logger.warning(f"Outbound queue full for {connection_id}, dropping {event}")
            return False
        return True

    def __len__(self):
        with self._lock:
            return len(self._outboxes)


connection_hub = ConnectionHub()
