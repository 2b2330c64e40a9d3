# /orchestrator/utils/lifecycle.py

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI

from orchestrator.utils.logging import setup_logging
from orchestrator.utils.alerting import alerting_service
from orchestrator.services.db_service import db_service
from orchestrator.services.broadcast_service import broadcast_service
from orchestrator.services.resource_service import resource_service
from orchestrator.services.channel_service import channel_service
from orchestrator.config.settings import settings

# Startup creates the document store indexes; shutdown lets pending operator
# broadcasts finish before the HTTP clients and the Mongo client are closed.

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    setup_logging()

    logger.info(f"Agent orchestrator starting up ({settings.environment})...")

    await db_service.create_indexes()

    logger.info("Application startup complete. Ready to accept requests.")

    yield  # Application is now running

    logger.info("Application shutting down...")

    await broadcast_service.drain()
    await resource_service.cleanup()
    await channel_service.cleanup()
    await alerting_service.cleanup()
    if db_service.client:
        db_service.client.close()
