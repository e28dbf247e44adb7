from fastapi import WebSocket
from typing import List
import json
import logging

logger = logging.getLogger(__name__)

class ConnectionManager:
    """
    Keeps track of the status websocket clients and fans messages out to them.

    Used as the broker's status broadcaster: a client whose socket fails during
    a broadcast is dropped instead of failing the whole broadcast.
    """
    def __init__(self):
        self.active_connections: List[WebSocket] = []

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self.active_connections.append(websocket)
        logger.info(f"Status client connected. Active connections: {len(self.active_connections)}")

    def disconnect(self, websocket: WebSocket):
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)
            logger.info(f"Status client disconnected. Remaining connections: {len(self.active_connections)}")

    async def send_json(self, websocket: WebSocket, data: dict):
        """Send a JSON message to a specific client"""
        await websocket.send_text(json.dumps(data, default=str))

    async def broadcast_json(self, data: dict):
        """Send a JSON message to all connected clients"""
        json_data = json.dumps(data, default=str)
        for connection in list(self.active_connections):
            try:
                await connection.send_text(json_data)
            except Exception as e:
                logger.warning(f"Dropping status client after send failure: {str(e)}")
                self.disconnect(connection)
