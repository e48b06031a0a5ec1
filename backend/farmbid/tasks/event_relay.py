# farmbid/tasks/event_relay.py
"""Fan auction events out from Redis pub/sub to WebSocket clients.

Each API worker runs one relay, so a client receives events no matter which
worker committed the transition.
"""

import asyncio
import json
import logging

from redis.asyncio import Redis

from farmbid.api.websocket import ConnectionManager, manager
from farmbid.core.config import settings
from farmbid.core.redis import redis_client
from farmbid.services.events import AUCTION_CHANNEL_PREFIX

logger = logging.getLogger(__name__)


async def relay_message(message: dict, connections: ConnectionManager = manager) -> int:
    """Forward one pub/sub message to the clients watching its auction."""
    if message.get("type") != "pmessage":
        return 0

    channel = message["channel"]
    if isinstance(channel, bytes):
        channel = channel.decode("utf-8")
    auction_id = channel[len(AUCTION_CHANNEL_PREFIX):]

    try:
        event = json.loads(message["data"])
    except (TypeError, ValueError) as e:
        logger.warning(f"Dropping malformed event on {channel}: {e}")
        return 0

    return await connections.broadcast_to_auction(auction_id, event)


async def listen(redis: Redis, connections: ConnectionManager = manager) -> None:
    pubsub = redis.pubsub()
    await pubsub.psubscribe(f"{AUCTION_CHANNEL_PREFIX}*")
    try:
        async for message in pubsub.listen():
            await relay_message(message, connections)
    finally:
        await pubsub.punsubscribe()
        await pubsub.aclose()


async def event_relay_task(retry_delay: float | None = None):
    """Keep a pattern subscription on auction channels alive."""
    retry_delay = retry_delay or settings.EVENT_RELAY_RETRY_SECONDS
    logger.info("Auction event relay started")

    while True:
        try:
            await listen(redis_client.get_client())
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Auction event relay failed, reconnecting in {retry_delay}s: {e}")
            await asyncio.sleep(retry_delay)
