import logging

from fastapi import FastAPI

from lendflow.core.settings import settings
from lendflow.db.init_db import init_db
from lendflow.db.session import engine
from lendflow.utils.redis_client import close_redis_client

logger = logging.getLogger(__name__)


def register_event_handlers(app: FastAPI) -> None:
    @app.on_event("startup")
    async def on_startup() -> None:
        logger.info(
            "Application startup environment=%s storage_provider=%s",
            settings.environment,
            settings.storage_provider,
        )
        await init_db()

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        await close_redis_client()
        await engine.dispose()
        logger.info("Application shutdown")
