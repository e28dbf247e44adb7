from fastapi import APIRouter
from app.api.v1.endpoints import cache, chat, databases, schema, status

api_router = APIRouter()
api_router.include_router(databases.router, prefix="/databases", tags=["databases"])
api_router.include_router(schema.router, prefix="/schema", tags=["schema"])
api_router.include_router(cache.router, tags=["cache"])
api_router.include_router(chat.router, prefix="/chat", tags=["chat"])
api_router.include_router(status.router, tags=["status"])
