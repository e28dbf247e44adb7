from fastapi import Request

from app.core.config import Settings, settings as default_settings
from llm_services import PromptLoader, QueryAssistant
from mcp_broker import MCPBroker, QueryCache, SchemaSnapshotService, default_registry


def build_broker(settings: Settings = default_settings, broadcaster=None) -> MCPBroker:
    """Wire a broker from application settings"""
    return MCPBroker(
        query_cache=QueryCache(
            max_size=settings.QUERY_CACHE_MAX_SIZE,
            default_ttl=settings.QUERY_CACHE_TTL_SECONDS,
            cleanup_interval=settings.QUERY_CACHE_CLEANUP_INTERVAL,
        ),
        schema_service=SchemaSnapshotService(history_limit=settings.SCHEMA_HISTORY_LIMIT),
        assistant=QueryAssistant(
            model=settings.DEFAULT_MODEL,
            prompt_loader=PromptLoader(),
            max_tokens=settings.LLM_MAX_TOKENS,
        ),
        connectors=default_registry(latency=settings.CONNECTOR_LATENCY),
        broadcaster=broadcaster,
    )


def get_broker(request: Request) -> MCPBroker:
    """Broker created by the application lifespan"""
    return request.app.state.broker
