"""Create the compound schema against ``DATABASE_URL``.

Usage: ``python -m compound_backend.storage.db.migrate``
"""
from __future__ import annotations

import asyncio
import logging

import asyncpg

from compound_backend.config import get_settings
from compound_backend.core.observability import configure_logging

from .schema import apply_schema

logger = logging.getLogger(__name__)


async def migrate() -> None:
    settings = get_settings()
    conn = await asyncpg.connect(
        dsn=settings.database_url,
        timeout=settings.db_acquire_timeout_seconds,
    )
    try:
        await apply_schema(conn)
    finally:
        await conn.close()


def main() -> None:
    configure_logging(get_settings())
    asyncio.run(migrate())
    logger.info("db.migrate complete")


if __name__ == "__main__":
    main()
