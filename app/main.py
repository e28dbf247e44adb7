import asyncio
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.core.logger import setup_logging
from app.api.deps import build_broker
from app.api.v1.api import api_router
from app.api.v1.endpoints.status import broadcast_status_loop, status_manager

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Own the broker and the status broadcast task for the lifetime of the app"""
    broker = build_broker(settings, broadcaster=status_manager)
    broker.start()
    app.state.broker = broker

    status_task = asyncio.create_task(
        broadcast_status_loop(broker, status_manager, settings.STATUS_BROADCAST_INTERVAL)
    )
    logger.info(f"{settings.APP_NAME} started ({settings.ENVIRONMENT})")
    try:
        yield
    finally:
        status_task.cancel()
        try:
            await status_task
        except asyncio.CancelledError:
            pass
        await broker.shutdown()

# Initialize FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    description="MCP broker for PromptELT: cached database queries, schema snapshots and natural-language querying",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api/v1")

@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "ok"}

def main():
    setup_logging()
    uvicorn.run(
        "app.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.DEBUG,
    )

if __name__ == "__main__":
    main()
