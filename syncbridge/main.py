"""Main FastAPI application"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from syncbridge.api import sync, syncs, users, webhooks
from syncbridge.config import settings
from syncbridge.models.base import init_db
from syncbridge.scheduler import scheduler
from syncbridge.security import BasicAuthMiddleware

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

WEBHOOK_PATHS = {"/api/linear/webhook", "/api/github/webhook"}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    # Startup
    logger.info("Starting SyncBridge")
    await init_db()
    scheduler.start()
    yield
    # Shutdown
    logger.info("Stopping SyncBridge")
    scheduler.stop()


app = FastAPI(
    title="SyncBridge",
    description="Two-way sync between Linear tickets and GitHub issues",
    version="1.0.0",
    lifespan=lifespan,
)

# Optional built-in auth for the management API. Webhooks verify their senders themselves.
if settings.auth_enabled:
    if not settings.auth_username or not settings.auth_password:
        raise RuntimeError("AUTH_ENABLED=true requires AUTH_USERNAME and AUTH_PASSWORD to be set")
    app.add_middleware(
        BasicAuthMiddleware,
        username=settings.auth_username,
        password=settings.auth_password,
        allow_paths={"/health", *WEBHOOK_PATHS},
    )

# Include API routers
app.include_router(webhooks.router)
app.include_router(syncs.router)
app.include_router(users.router)
app.include_router(sync.router)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "SyncBridge"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "syncbridge.main:app",
        host=settings.host,
        port=settings.port,
        reload=False,
        log_level=settings.log_level.lower(),
    )
