import asyncio
import logging
from pathlib import Path

import asyncpg

from natours.config import get_settings, load_config
from natours.utils.logger import setup_logging

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).with_name("schema.sql")


async def create_pool(dsn: str):
    try:
        pool = await asyncpg.create_pool(dsn=dsn, min_size=2, max_size=15)
        logger.info("DB connection success")
        return pool
    except Exception as e:
        logger.critical(f"Unable to create the DB connection pool: {e}")
        raise


async def close_pool(pool: asyncpg.Pool):
    if pool:
        await pool.close()
        logger.info("DB connection pool closed")


async def create_schema(pool: asyncpg.Pool):
    async with pool.acquire() as conn:
        await conn.execute(SCHEMA_PATH.read_text(encoding="utf-8"))
    logger.info("DB schema applied")


async def init_db(dsn: str):
    pool = await create_pool(dsn)
    try:
        await create_schema(pool)
    finally:
        await close_pool(pool)


def main():
    load_config()
    settings = get_settings()
    setup_logging(settings.log_level)
    asyncio.run(init_db(settings.database_url))
