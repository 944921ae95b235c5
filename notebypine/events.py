"""
Live-update broadcasting for the admin UI.

Routers call broadcast() after each successful write; every WebSocket
client connected to /ws receives {"type", "data", "timestamp"} as JSON.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Set

from fastapi import WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)

EVENT_TYPES = (
    "incident_created",
    "incident_updated",
    "incident_deleted",
    "solution_created",
    "solution_updated",
    "solution_deleted",
    "knowledge_created",
    "knowledge_updated",
    "knowledge_deleted",
    "lesson_created",
)


class ConnectionManager:
    """Tracks connected WebSocket clients and fans events out to them."""

    def __init__(self):
        self.active_connections: Set[WebSocket] = set()

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self.active_connections.add(websocket)
        logger.info(f"WebSocket client connected. Total: {len(self.active_connections)}")

    def disconnect(self, websocket: WebSocket) -> None:
        self.active_connections.discard(websocket)
        logger.info(f"WebSocket client disconnected. Total: {len(self.active_connections)}")

    async def broadcast(self, event_type: str, data: Any) -> int:
        """Send an event to every client; returns how many received it.

        Clients whose send fails are dropped.
        """
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type: {event_type}")

        wire = json.dumps({
            "type": event_type,
            "data": data,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }, default=str)

        delivered = 0
        disconnected = set()
        for ws in list(self.active_connections):
            try:
                await ws.send_text(wire)
                delivered += 1
            except (WebSocketDisconnect, RuntimeError, OSError) as e:
                logger.warning(f"Dropping WebSocket client after send failure: {e}")
                disconnected.add(ws)
        self.active_connections.difference_update(disconnected)
        return delivered


manager = ConnectionManager()


async def broadcast(event_type: str, data: Any) -> int:
    return await manager.broadcast(event_type, data)
