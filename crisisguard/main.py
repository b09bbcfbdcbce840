# crisisguard/main.py
# -*- coding: utf-8 -*-
"""
CrisisGuard Session Server — FastAPI application entrypoint
-----------------------------------------------------------
Wires everything together:

- Sets up central logging.
- Creates the FastAPI app.
- Adds middleware (CORS for dev).
- Mounts routers:
    * /sessions/*              (HTTP)      → session operations, snapshots
    * /ws/sessions/{id}        (WebSocket) → live snapshots + commands
- Meta endpoints: /, /health, /catalog.

Typical run command (dev):

    uvicorn crisisguard.main:app --host 0.0.0.0 --port 8000 --reload
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from crisisguard.core.config import settings
from crisisguard.models.session_state import DISASTER_CATALOG
from crisisguard.routers.sessions import router as sessions_router
from crisisguard.routers.ws import router as ws_router
from crisisguard.utils import get_logger, setup_logging

setup_logging(debug=settings.debug)
logger = get_logger(__name__)
logger.info(
    "CrisisGuard server starting (env=%s, online_enabled=%s, local_enabled=%s)",
    settings.environment,
    settings.advisory_online_enabled,
    settings.advisory_local_enabled,
)


def create_app() -> FastAPI:
    """Application factory."""
    app = FastAPI(
        title=settings.app_name,
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Browser clients call this API directly during development.
    if settings.environment != "production":
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=False,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.include_router(sessions_router)
    app.include_router(ws_router)

    @app.get("/", tags=["meta"])
    async def root():
        return {
            "name": settings.app_name,
            "environment": settings.environment,
            "message": "CrisisGuard session server is running.",
        }

    @app.get("/health", tags=["meta"])
    async def health_check():
        """Lightweight health check for monitoring scripts."""
        return {
            "status": "ok",
            "environment": settings.environment,
            "debug": settings.debug,
            "online_enabled": settings.advisory_online_enabled,
            "online_configured": bool(settings.advisory_api_key),
            "local_enabled": settings.advisory_local_enabled,
        }

    @app.get("/catalog", tags=["meta"])
    async def disaster_catalog():
        """Disaster types offered on the home screen."""
        return [entry.model_dump(mode="json") for entry in DISASTER_CATALOG]

    logger.info("FastAPI app created (env=%s)", settings.environment)
    return app


# ASGI app for uvicorn
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "crisisguard.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=(settings.environment != "production"),
    )
