from fastapi import APIRouter, Depends

from app.api.deps import get_broker
from app.utils.models import Envelope
from mcp_broker import MCPBroker

router = APIRouter()

@router.get("/diff", response_model=Envelope)
async def get_schema_diff(snapshot_a: str, snapshot_b: str, broker: MCPBroker = Depends(get_broker)):
    """Changes needed to go from snapshot_a to snapshot_b"""
    return broker.get_schema_diff(snapshot_a, snapshot_b).to_dict()
