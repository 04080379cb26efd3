"""FastAPI application exposing the section pulse read contract."""

import logging
from typing import Dict

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from section_pulse import __version__
from section_pulse.api.routes import router
from section_pulse.runtime import PulseRuntime

logger = logging.getLogger(__name__)


def create_app(runtime: PulseRuntime) -> FastAPI:
    """Build the API around an already wired runtime."""
    app = FastAPI(
        title="Section Pulse API",
        description="Collection section status per society and day",
        version=__version__,
    )
    app.state.runtime = runtime

    app.add_middleware(
        CORSMiddleware,
        allow_origins=runtime.settings.api.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/api/health", tags=["Health"])
    def health_check() -> Dict[str, str]:
        """Health check endpoint for load balancers and monitoring."""
        db_connected = runtime.database.check_connection()
        return {
            "status": "healthy" if db_connected else "degraded",
            "service": "section-pulse-api",
            "version": __version__,
            "database": "connected" if db_connected else "disconnected",
        }

    app.include_router(router)
    logger.debug("Section Pulse API routes registered")
    return app
