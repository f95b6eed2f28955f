import logging
from datetime import datetime, timezone
from typing import Dict, Set
from fastapi import WebSocket
from starlette.websockets import WebSocketState

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Open websocket connections, grouped by connection type and entity id."""

    def __init__(self):
        self.active_connections: Dict[str, Dict[str, Set[WebSocket]]] = {
            "user": {},
            "admin": {},
        }

    async def connect(self, websocket: WebSocket, entity_id: str, connection_type: str):
        await websocket.accept()

        connections = self.active_connections.setdefault(connection_type, {})
        connections.setdefault(entity_id, set()).add(websocket)

        await websocket.send_json(
            {
                "type": "connection_status",
                "data": {"status": "connected", "entity_id": entity_id},
                "timestamp": str(datetime.now(timezone.utc)),
            }
        )
        return entity_id

    async def send_personal_message(
        self, message: dict, entity_id: str, connection_type: str
    ):
        connections = self.active_connections.get(connection_type, {}).get(entity_id)
        if not connections:
            logger.debug(f"No active connections found for {connection_type} {entity_id}")
            return

        dead_connections = set()
        for connection in connections:
            try:
                await connection.send_json(message)
            except Exception as e:
                logger.warning(f"Error sending to connection: {e}")
                dead_connections.add(connection)

        # Remove dead connections
        for dead in dead_connections:
            connections.discard(dead)
            logger.info(f"Removed dead connection for {connection_type} {entity_id}")

    async def send_to_type(self, message: dict, connection_type: str):
        for entity_id in list(self.active_connections.get(connection_type, {})):
            await self.send_personal_message(message, entity_id, connection_type)

    async def broadcast(self, message: dict):
        for connection_type in list(self.active_connections):
            await self.send_to_type(message, connection_type)

    async def disconnect(
        self, websocket: WebSocket, entity_id: str, connection_type: str
    ):
        """Disconnect a WebSocket connection and remove it from active connections."""
        connections = self.active_connections.get(connection_type, {})
        if entity_id in connections:
            connections[entity_id].discard(websocket)

            # Clean up empty sets
            if not connections[entity_id]:
                del connections[entity_id]

    @staticmethod
    async def close(websocket: WebSocket, code: int = 1000):
        if websocket.client_state != WebSocketState.DISCONNECTED:
            await websocket.close(code=code)
