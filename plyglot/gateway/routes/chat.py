"""WebSocket chat endpoint."""

import json
import logging
import uuid

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from plyglot.gateway.connection_router import (
    ERROR,
    GENERIC_ERROR_MESSAGE,
    Connection,
    ConnectionRouter,
)
from plyglot.shared.metrics import WEBSOCKET_CONNECTIONS_ACTIVE
from plyglot.shared.schemas import EventFrame

logger = logging.getLogger(__name__)

router = APIRouter()


class ConnectionManager:
    """Tracks live WebSockets by connection id."""

    def __init__(self):
        """Initialize connection manager."""
        self.active_connections: dict[str, WebSocket] = {}

    async def connect(self, websocket: WebSocket, client_id: str) -> None:
        """Accept and store a new WebSocket connection."""
        await websocket.accept()
        self.active_connections[client_id] = websocket
        WEBSOCKET_CONNECTIONS_ACTIVE.inc()

    def disconnect(self, client_id: str) -> None:
        """Remove a WebSocket connection."""
        if client_id in self.active_connections:
            del self.active_connections[client_id]
            WEBSOCKET_CONNECTIONS_ACTIVE.dec()

    async def send_event(self, client_id: str, event: str, data: dict) -> None:
        """Send an event frame to a specific client."""
        websocket = self.active_connections.get(client_id)
        if websocket is None:
            return
        try:
            await websocket.send_text(json.dumps({"event": event, "data": data}))
        except (WebSocketDisconnect, RuntimeError):
            logger.debug(f"Client {client_id} went away before '{event}' was sent")


# Global connection manager
manager = ConnectionManager()


async def _send_error(client_id: str) -> None:
    await manager.send_event(client_id, ERROR, {"message": GENERIC_ERROR_MESSAGE})


async def _receive_loop(
    websocket: WebSocket, connection: Connection, connection_router: ConnectionRouter
) -> None:
    """Read frames until the client leaves, handling them one at a time."""
    client_id = connection.id
    max_size = websocket.app.state.settings.WS_MAX_MESSAGE_SIZE
    while True:
        raw = await websocket.receive()
        if raw["type"] == "websocket.disconnect":
            return

        data = raw.get("text") or ""
        if not data and raw.get("bytes"):
            data = raw["bytes"].decode("utf-8", errors="replace")

        if len(data.encode("utf-8")) > max_size:
            await websocket.close(
                code=1009,  # Message Too Big
                reason=f"Message exceeds maximum size of {max_size} bytes",
            )
            return

        try:
            frame = EventFrame.model_validate_json(data)
        except ValidationError:
            logger.warning(f"Invalid frame from client {client_id}")
            await _send_error(client_id)
            continue

        try:
            await connection_router.dispatch(connection, frame.event, frame.data)
        except Exception:
            logger.error(f"Error processing '{frame.event}' for {client_id}", exc_info=True)
            await _send_error(client_id)


@router.websocket("/ws/chat")
async def websocket_chat_endpoint(websocket: WebSocket) -> None:
    """WebSocket endpoint carrying chat events.

    Frames are JSON objects of the form ``{"event": name, "data": payload}``
    in both directions.
    """
    connection_router: ConnectionRouter = websocket.app.state.connection_router
    client_id = str(uuid.uuid4())

    async def emit(event: str, data: dict) -> None:
        await manager.send_event(client_id, event, data)

    await manager.connect(websocket, client_id)
    connection = connection_router.connect(client_id, emit)
    try:
        await _receive_loop(websocket, connection, connection_router)
    except WebSocketDisconnect:
        pass
    finally:
        connection_router.disconnect(connection)
        manager.disconnect(client_id)
