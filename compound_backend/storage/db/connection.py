"""asyncpg pool construction for the compound store."""
from __future__ import annotations

import logging

import asyncpg

from compound_backend.config import Settings

logger = logging.getLogger(__name__)


async def create_pool(settings: Settings) -> asyncpg.Pool:
    """Open the process-wide pool described by ``settings``."""

    pool = await asyncpg.create_pool(
        dsn=settings.database_url,
        min_size=settings.db_pool_min_size,
        max_size=settings.db_pool_max_size,
        timeout=settings.db_acquire_timeout_seconds,
        command_timeout=settings.db_command_timeout_seconds,
        max_inactive_connection_lifetime=settings.db_idle_lifetime_seconds,
    )
    logger.info(
        "db.pool_opened min_size=%s max_size=%s",
        settings.db_pool_min_size,
        settings.db_pool_max_size,
    )
    return pool


async def close_pool(pool: asyncpg.Pool | None) -> None:
    if pool is None:
        return
    await pool.close()
    logger.info("db.pool_closed")
