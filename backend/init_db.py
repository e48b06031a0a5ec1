#!/usr/bin/env python3
"""Initialize database tables and check the Redis connection.

For managed environments prefer `alembic upgrade head`; this script is the
quick path for local development.
"""
import asyncio
import logging

from farmbid.core.database import close_db, init_db
from farmbid.core.redis import redis_client

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger("init_db")


async def main() -> int:
    """Initialize database and test Redis connection."""
    logger.info("Initializing database...")
    try:
        await init_db()
        logger.info("Database tables created")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        return 1
    finally:
        await close_db()

    logger.info("Testing Redis connection...")
    try:
        await redis_client.connect()
        if await redis_client.ping():
            logger.info("Redis connection successful")
        else:
            logger.warning("Redis ping failed")
    except Exception as e:
        logger.warning(f"Redis connection failed: {e}")
    finally:
        await redis_client.disconnect()
    return 0


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
