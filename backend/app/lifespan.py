"""
Application lifespan management for startup and shutdown events
"""
import logging
from contextlib import asynccontextmanager

from app.core.config import get_env_name, settings, validate_config
from app.run_migrations import run_migrations

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app):
    """Validate configuration and optionally migrate before serving."""
    logger.info(f"Starting Plogo charging backend (ENV={get_env_name()})")

    validate_config()

    if settings.RUN_MIGRATIONS_ON_STARTUP:
        run_migrations()
    else:
        logger.info("Skipping migrations at startup (RUN_MIGRATIONS_ON_STARTUP is not set)")

    yield

    logger.info("Plogo charging backend shutting down")
