from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from scribedesk.api.routes.activity import router as activity_router
from scribedesk.api.routes.duplicates import router as duplicates_router
from scribedesk.api.routes.health import router as health_router
from scribedesk.api.routes.preferences import router as preferences_router
from scribedesk.api.routes.presets import router as presets_router
from scribedesk.api.routes.records import router as records_router
from scribedesk.core.config import get_settings
from scribedesk.core.logging import configure_logging
from scribedesk.db.init_db import initialize_database


@asynccontextmanager
async def lifespan(_app: FastAPI):
    settings = get_settings()
    configure_logging(settings.log_level)
    initialize_database()
    yield


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.include_router(health_router, prefix="/api/v1")
    app.include_router(records_router, prefix="/api/v1")
    app.include_router(duplicates_router, prefix="/api/v1")
    app.include_router(presets_router, prefix="/api/v1")
    app.include_router(preferences_router, prefix="/api/v1")
    app.include_router(activity_router, prefix="/api/v1")
    return app
