# farmbid/tasks/auction_monitor.py
"""Background task that closes auctions once their end time has passed."""

import asyncio
import logging

from farmbid.core.config import settings
from farmbid.core.database import AsyncSessionLocal
from farmbid.core.redis import redis_client
from farmbid.services.auction_service import close_expired_auctions

logger = logging.getLogger(__name__)


async def run_auction_sweep() -> int:
    """Run one expiry sweep in a fresh session. Returns how many auctions closed."""
    redis = await redis_client.available_client()
    async with AsyncSessionLocal() as db:
        closed = await close_expired_auctions(db, redis=redis)
    if closed:
        logger.info(f"Auction sweep closed {len(closed)} auction(s)")
    return len(closed)


async def auction_monitor_task(interval: float | None = None):
    """
    Background task that periodically closes expired auctions.
    Runs every AUCTION_SWEEP_INTERVAL_SECONDS.
    """
    interval = interval or settings.AUCTION_SWEEP_INTERVAL_SECONDS
    logger.info(f"Auction monitor task started (interval: {interval}s)")

    while True:
        try:
            await run_auction_sweep()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error_msg = str(e)
            if "QueuePool limit" in error_msg or "connection timed out" in error_msg:
                logger.error(
                    f"Connection pool exhausted in auction monitor, waiting 15 seconds: {e}"
                )
                await asyncio.sleep(15)
            else:
                logger.error(f"Error in auction monitor task: {e}")
                await asyncio.sleep(interval)
        else:
            await asyncio.sleep(interval)
