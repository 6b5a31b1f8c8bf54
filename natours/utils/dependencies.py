import logging

import asyncpg
from fastapi import Request

from natours.utils.app_error import AppError

logger = logging.getLogger(__name__)


async def get_connection(request: Request):
    if not getattr(request.app.state, "db_pool", None):
        logger.error("DB connection pool is not available")
        raise AppError("Database service unavailable", 503)
    pool: asyncpg.Pool = request.app.state.db_pool
    async with pool.acquire() as connection:
        yield connection
