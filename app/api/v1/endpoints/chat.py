import logging
from fastapi import APIRouter, Depends

from app.api.deps import get_broker
from app.utils.models import ChatQueryRequest, Envelope, EtlPipelineRequest, ValidateQueryRequest
from mcp_broker import MCPBroker

logger = logging.getLogger(__name__)

router = APIRouter()

@router.post("/query", response_model=Envelope)
async def chat_query(request: ChatQueryRequest, broker: MCPBroker = Depends(get_broker)):
    """Answer a natural-language question using the schemas of the target databases"""
    logger.info(f"Natural language query for databases {request.database_ids}")
    response = await broker.process_natural_language_query(
        request.query,
        request.database_ids,
        context=request.context,
        api_key=request.api_key,
    )
    return response.to_dict()

@router.post("/etl", response_model=Envelope)
async def chat_etl(request: EtlPipelineRequest, broker: MCPBroker = Depends(get_broker)):
    """Design an ETL pipeline between two systems"""
    response = await broker.generate_etl_pipeline(
        request.source,
        request.target,
        request.requirements,
        database_ids=request.database_ids,
        api_key=request.api_key,
    )
    return response.to_dict()

@router.post("/validate", response_model=Envelope)
async def chat_validate(request: ValidateQueryRequest, broker: MCPBroker = Depends(get_broker)):
    response = await broker.validate_query(request.sql, request.database_ids, api_key=request.api_key)
    return response.to_dict()
