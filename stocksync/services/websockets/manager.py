# stocksync/services/websockets/manager.py
from typing import Dict, List
from fastapi import WebSocket
import json
import logging

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Sockets connected to the inventory feed, grouped by dataset."""

    def __init__(self):
        self.active_connections: Dict[str, List[WebSocket]] = {}

    @property
    def connection_count(self) -> int:
        return sum(len(sockets) for sockets in self.active_connections.values())

    async def connect(self, websocket: WebSocket, channel: str):
        await websocket.accept()
        self.active_connections.setdefault(channel, []).append(websocket)
        logger.info(f"WebSocket connected to {channel}. Total connections: {self.connection_count}")

    def disconnect(self, websocket: WebSocket):
        for sockets in self.active_connections.values():
            if websocket in sockets:
                sockets.remove(websocket)
        logger.info(f"WebSocket disconnected. Total connections: {self.connection_count}")

    async def send_personal_message(self, message: dict, websocket: WebSocket):
        await websocket.send_text(json.dumps(message))

    async def broadcast(self, message: dict, channel: str = None):
        """Broadcast message to every client, or only to one channel's clients"""
        json_message = json.dumps(message)
        if channel is None:
            targets = [ws for sockets in self.active_connections.values() for ws in sockets]
        else:
            targets = list(self.active_connections.get(channel, []))

        disconnected = []
        for connection in targets:
            try:
                await connection.send_text(json_message)
            except Exception as e:
                logger.error(f"Error sending to WebSocket: {e}")
                disconnected.append(connection)

        # Clean up disconnected clients
        for connection in disconnected:
            self.disconnect(connection)


# Global connection manager instance
manager = ConnectionManager()
