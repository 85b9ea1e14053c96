"""FastAPI application for the modguard moderation portal.

Provides REST API endpoints wrapping the modguard package for:
- Moderation queue listing, flagging and moderator decisions
- Content risk analysis and automatic flagging
- Audit trail listing and export
- Service health and runtime configuration

Run with ``uvicorn --factory web.backend.app.main:create_app``.
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

# Ensure the modguard package is importable by adding the project root to sys.path.
_project_root = str(Path(__file__).resolve().parents[3])
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from modguard import __version__
from modguard.container import Services, build_services
from modguard.errors import ModGuardError
from modguard.logging_config import setup_logging
from web.backend.app.deps import status_for
from web.backend.app.routers import analysis, audit, moderation, system

logger = logging.getLogger(__name__)


def create_app(services: Optional[Services] = None) -> FastAPI:
    """Build the app around *services*, or around services from the environment."""
    if services is None:
        services = build_services()
        setup_logging(services.settings.log_level, services.settings.log_json)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        # Let queued notifications and event listeners finish before exit.
        await services.orchestrator.drain(timeout=services.settings.notification_timeout)

    app = FastAPI(
        title="modguard API",
        description=(
            "REST API for modguard. "
            "Provides endpoints for the moderation queue, content risk analysis, "
            "automatic flagging, and the audit trail."
        ),
        version=__version__,
        lifespan=lifespan,
    )
    app.state.services = services

    # -----------------------------------------------------------------------
    # CORS middleware (allow all origins for development)
    # -----------------------------------------------------------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ModGuardError)
    async def modguard_error_handler(request: Request, exc: ModGuardError):
        code = status_for(exc)
        if code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=code,
            content={"detail": {"message": exc.public_message, "code": exc.code}},
        )

    # -----------------------------------------------------------------------
    # Include routers
    # -----------------------------------------------------------------------
    app.include_router(moderation.router)
    app.include_router(analysis.router)
    app.include_router(audit.router)
    app.include_router(system.router)

    # -----------------------------------------------------------------------
    # Root and health-check endpoints
    # -----------------------------------------------------------------------

    @app.get("/", tags=["meta"])
    async def root():
        """Return basic API information."""
        return {
            "name": "modguard API",
            "version": __version__,
            "description": "Content moderation REST API",
            "docs": "/docs",
            "openapi": "/openapi.json",
        }

    @app.get("/health", tags=["meta"])
    async def health_check():
        """Liveness probe; see /api/system/health for dependencies."""
        return {"status": "healthy"}

    return app
