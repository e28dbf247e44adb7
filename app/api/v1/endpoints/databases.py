import logging
from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, Query

from app.api.deps import get_broker
from app.utils.models import ConnectDatabaseRequest, Envelope, ExecuteQueryRequest
from mcp_broker import BrokerResponse, DatabaseConfig, MCPBroker

logger = logging.getLogger(__name__)

router = APIRouter()

@router.post("/connect", response_model=Envelope)
async def connect_database(request: ConnectDatabaseRequest, broker: MCPBroker = Depends(get_broker)):
    """Connect a database and capture its baseline schema snapshot"""
    config = DatabaseConfig(**request.model_dump())
    response = await broker.connect_database(config)
    return response.to_dict()

@router.get("", response_model=Envelope)
async def list_connections(broker: MCPBroker = Depends(get_broker)):
    """All active connections"""
    return BrokerResponse(success=True, data=broker.get_all_connections()).to_dict()

@router.post("/{database_id}/query", response_model=Envelope)
async def execute_query(database_id: int, request: ExecuteQueryRequest, broker: MCPBroker = Depends(get_broker)):
    response = await broker.execute_query(database_id, request.query, request.parameters)
    return response.to_dict()

@router.get("/{database_id}/schema", response_model=Envelope)
async def get_schema(database_id: int, include_data: bool = False, broker: MCPBroker = Depends(get_broker)):
    response = await broker.get_schema(database_id, include_data)
    return response.to_dict()

@router.post("/{database_id}/schema/refresh", response_model=Envelope)
async def refresh_schema(database_id: int, include_data: bool = False, broker: MCPBroker = Depends(get_broker)):
    """Re-introspect a database and report what changed since the latest snapshot"""
    response = await broker.refresh_schema(database_id, include_data)
    return response.to_dict()

@router.get("/{database_id}/schema/history", response_model=Envelope)
async def get_snapshot_history(
    database_id: int,
    limit: int = Query(default=10, ge=1, le=100),
    broker: MCPBroker = Depends(get_broker)
):
    return broker.get_snapshot_history(database_id, limit).to_dict()

@router.get("/{database_id}/schema/changes", response_model=Envelope)
async def get_schema_changes(
    database_id: int,
    since: Optional[datetime] = None,
    broker: MCPBroker = Depends(get_broker)
):
    return broker.get_schema_changes(database_id, since).to_dict()

@router.delete("/{database_id}", response_model=Envelope)
async def disconnect_database(database_id: int, broker: MCPBroker = Depends(get_broker)):
    response = await broker.disconnect_database(database_id)
    return response.to_dict()
