"""FastAPI application configuration (Key Server)."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ...envs.key_server_env import get_settings
from ...infrastructure.database import get_database_client
from ...middleware.ed25519 import Ed25519SignatureMiddleware
from . import dependencies
from .routers import creator, keys, videos

logger = logging.getLogger(__name__)

settings = get_settings()

# Mutating requests under these prefixes must carry a creator signature.
CREATOR_ROUTE_PREFIXES = ("/api/v1/videos", "/api/v1/creator")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info(
        "Key server on %s, contract %s",
        settings.ledger_network,
        settings.contract_address,
    )
    yield
    await get_database_client(settings).close()
    if dependencies._ledger_client is not None:
        await dependencies._ledger_client.aclose()
        dependencies._ledger_client = None


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="StreamLock payment-gated segment key server",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        Ed25519SignatureMiddleware,
        protected_prefixes=CREATOR_ROUTE_PREFIXES,
        max_clock_skew_seconds=settings.signature_max_clock_skew_seconds,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api_cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["*"],
    )
    app.include_router(keys.router, prefix="/api/v1")
    app.include_router(videos.router, prefix="/api/v1")
    app.include_router(creator.router, prefix="/api/v1")

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint."""
        return {
            "message": f"Welcome to {settings.app_name}",
            "version": settings.app_version,
            "docs": "/docs",
        }

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {
            "status": "healthy",
            "service": settings.app_name,
            "version": settings.app_version,
            "network": settings.ledger_network,
        }

    return app


app = create_app()
