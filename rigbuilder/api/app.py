"""RigBuilder Configurator Engine — FastAPI application.

Mounts the configurator gateway under /configurator/*. The storefront
client and the catalog cache are created once at startup and shared by
every request.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from rigbuilder.api.configurator import router as configurator_router
from rigbuilder.api.configurator import set_cache, set_storefront
from rigbuilder.cache.redis_cache import CatalogCache
from rigbuilder.storefront.client import create_storefront_client

logger = logging.getLogger(__name__)

ENGINE_VERSION = "0.1.0"


# ──────────────────────────────────────────────
# Lifespan: startup / shutdown
# ──────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize shared resources on startup, cleanup on shutdown."""
    # Initialize Redis cache
    cache = CatalogCache()
    cache_connected = await cache.connect()

    storefront = create_storefront_client(
        timeout=float(os.getenv("RIGBUILDER_HTTP_TIMEOUT", "10")),
        cache=cache if cache_connected else None,
    )

    set_storefront(storefront)
    set_cache(cache if cache_connected else None)

    if storefront:
        logger.info("Storefront client ready: %s", storefront.provider_name)
    else:
        logger.warning("No storefront configured — catalog proxy disabled")

    if cache_connected:
        logger.info("Redis cache connected")
    else:
        logger.warning("Redis unavailable — catalog caching disabled")

    yield

    # Cleanup
    if storefront:
        await storefront.close()
    await cache.disconnect()
    set_storefront(None)
    set_cache(None)
    logger.info("Shutting down RigBuilder Configurator Engine")


# ──────────────────────────────────────────────
# App
# ──────────────────────────────────────────────


def create_app() -> FastAPI:
    """Factory function — creates and configures the FastAPI app."""
    app = FastAPI(
        title="RigBuilder Configurator Engine",
        description=(
            "Compatibility and power-budget rules for the custom-PC configurator.\n\n"
            "## Gateway\n\n"
            "- **Configurator** (`/configurator/*`): compatibility reports, "
            "power estimates, filter vocabulary, catalog proxy\n"
        ),
        version=ENGINE_VERSION,
        lifespan=lifespan,
    )

    # CORS: allow the storefront frontend
    allowed_origins = os.getenv(
        "CORS_ORIGINS",
        "http://localhost:3000,http://localhost:5173",
    ).split(",")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in allowed_origins],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(configurator_router)

    # Root health check
    @app.get("/", tags=["Root"])
    async def root():
        return {
            "engine": "RigBuilder Configurator",
            "version": ENGINE_VERSION,
            "gateways": {
                "configurator": "/configurator",
            },
        }

    return app


# ──────────────────────────────────────────────
# Entrypoint
# ──────────────────────────────────────────────

app = create_app()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "rigbuilder.api.app:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=True,
    )
