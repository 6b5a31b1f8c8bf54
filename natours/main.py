import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from natours.config import Settings, get_settings
from natours.db.database import close_pool, create_pool
from natours.routers import (
    booking_router,
    review_router,
    tour_router,
    user_router,
    view_router,
)
from natours.utils.error_handler import register_error_handlers
from natours.utils.pipeline import build_edge_pipeline

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    app.state.db_pool = await create_pool(settings.database_url)
    try:
        yield
    finally:
        await close_pool(app.state.db_pool)
        app.state.db_pool = None


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(title="Natours", lifespan=lifespan, debug=False)
    app.state.settings = settings
    app.state.db_pool = None

    build_edge_pipeline(settings).install(app)

    app.include_router(booking_router.webhook_router)
    app.include_router(view_router.router)
    app.include_router(user_router.router)
    app.include_router(tour_router.router)
    app.include_router(review_router.router)
    app.include_router(booking_router.router)

    register_error_handlers(app)
    logger.info(f"Application created ({settings.node_env})")
    return app
