"""Logfire cloud observability initialization and instrumentation."""

import logging
from typing import Any, Optional

import logfire
from sqlalchemy.engine import Engine

from section_pulse import __version__
from section_pulse.config import Settings

logger = logging.getLogger(__name__)


def initialize_logfire(
    settings: Settings,
    engine: Optional[Engine] = None,
    app: Optional[Any] = None,
) -> None:
    """
    Initialize Logfire with instrumentation.

    Must be called ONCE at process startup, before the first sweep or request.

    Instruments:
    - Python logging (bridged to Logfire)
    - SQLAlchemy engine (every upsert and compare-and-set statement)
    - FastAPI app (read API), when one is passed

    Args:
        settings: Application settings containing Logfire token
        engine: Engine shared by all tenant schemas
        app: FastAPI application to instrument
    """
    if not settings.logfire_token:
        logger.warning("Logfire token not set - observability disabled")
        return

    try:
        logfire.configure(
            token=settings.logfire_token,
            service_name="section-pulse",
            service_version=__version__,
            environment=settings.environment,
        )

        root_logger = logging.getLogger()
        root_logger.addHandler(logfire.LogfireLoggingHandler())

        if engine is not None:
            logfire.instrument_sqlalchemy(engine=engine)

        if app is not None:
            logfire.instrument_fastapi(app)

        logger.info("✓ Logfire cloud tracking initialized")

    except Exception as e:
        logger.warning(f"Failed to initialize Logfire: {e}")
        # Continue running - observability is optional
