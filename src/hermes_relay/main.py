# src/hermes_relay/main.py
"""Main entry point for the Hermes relay application."""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from hermes_relay.api.v1 import accounts_router, chats_router, realtime_router, users_router
from hermes_relay.core.settings import settings
from hermes_relay.services.fanout import ConnectionHub

logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Hermes Relay API",
    description="Realtime relay for end-to-end encrypted chats",
    version=settings.app_version,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Add GZip middleware for compression
app.add_middleware(GZipMiddleware)

# Fan-out transport shared by every WebSocket connection of this process
app.state.hub = ConnectionHub()

# Include API routers
app.include_router(chats_router, prefix="/api/v1")
app.include_router(accounts_router, prefix="/api/v1")
app.include_router(users_router, prefix="/api/v1")
app.include_router(realtime_router, prefix="/api/v1")


@app.on_event("startup")
async def on_startup() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("%s %s starting", settings.app_name, settings.app_version)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "description": "Realtime relay for end-to-end encrypted chats",
        "realtime": "/api/v1/ws",
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("hermes_relay.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
