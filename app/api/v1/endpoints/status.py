import asyncio
import logging
from datetime import datetime, timezone
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from app.utils.models import DatabaseStatusEvent
from app.utils.websocket.connection import ConnectionManager
from mcp_broker import MCPBroker

logger = logging.getLogger(__name__)

router = APIRouter()

# Shared by the websocket endpoint and the broker, which publishes connect/disconnect events through it
status_manager = ConnectionManager()

def build_status_event(broker: MCPBroker) -> dict:
    connections = broker.get_all_connections()
    return DatabaseStatusEvent(
        data={
            "connections": [connection.to_dict() for connection in connections],
            "stats": broker.get_service_stats(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    ).model_dump()

async def broadcast_status_loop(broker: MCPBroker, manager: ConnectionManager, interval: float):
    """Push a status snapshot to every status client every `interval` seconds"""
    while True:
        await asyncio.sleep(interval)
        if not manager.active_connections:
            continue
        try:
            await manager.broadcast_json(build_status_event(broker))
        except Exception as e:
            logger.error(f"Status broadcast failed: {str(e)}")

@router.websocket("/ws/status")
async def websocket_status(websocket: WebSocket):
    """
    Status stream: a greeting on connect, then periodic `database_status_update`
    events and `database_status` events on connect/disconnect. A client may send
    "ping" to get an immediate status event back.
    """
    await status_manager.connect(websocket)
    try:
        await status_manager.send_json(
            websocket,
            {"type": "connection", "message": "Connected to MCP broker status stream"}
        )
        while True:
            message = await websocket.receive_text()
            if message.strip().lower() == "ping":
                await status_manager.send_json(websocket, build_status_event(websocket.app.state.broker))
    except WebSocketDisconnect:
        status_manager.disconnect(websocket)
