import logging
from typing import Optional
from fastapi import APIRouter, Depends

from app.api.deps import get_broker
from app.utils.models import Envelope, InvalidateCacheRequest
from mcp_broker import BrokerResponse, MCPBroker

logger = logging.getLogger(__name__)

router = APIRouter()

@router.post("/cache/invalidate", response_model=Envelope)
async def invalidate_cache(request: Optional[InvalidateCacheRequest] = None, broker: MCPBroker = Depends(get_broker)):
    """Drop cached results by substring of the cache key and/or database id"""
    request = request or InvalidateCacheRequest()
    response = broker.invalidate_cache(request.pattern, request.database_id)
    logger.info(f"Cache invalidation removed {response.data['removed']} entries")
    return response.to_dict()

@router.get("/stats", response_model=Envelope)
async def get_stats(broker: MCPBroker = Depends(get_broker)):
    """Connection count, cache and snapshot statistics and uptime"""
    return BrokerResponse(success=True, data=broker.get_service_stats()).to_dict()
