"""Domain events published to the realtime change feed.

Events go out on Redis pub/sub after the transition that produced them has
committed. Delivery is at-most-once: a publish failure is logged and dropped.
"""

import json
import logging
from typing import Any
from uuid import UUID

from redis.asyncio import Redis

from farmbid.core.database import utcnow

logger = logging.getLogger(__name__)

AUCTION_CHANNEL_PREFIX = "auction:"

BID_PLACED = "bid_placed"
BID_OUTBID = "bid_outbid"
BID_ACCEPTED = "bid_accepted"
BID_REJECTED = "bid_rejected"
BID_PROMOTED = "bid_promoted"
AUCTION_CLOSED = "auction_closed"
AUCTION_CANCELLED = "auction_cancelled"


def auction_channel(auction_id: UUID | str) -> str:
    return f"{AUCTION_CHANNEL_PREFIX}{auction_id}"


def build_event(event_type: str, auction_id: UUID, **fields: Any) -> dict[str, Any]:
    event = {
        "type": event_type,
        "auction_id": str(auction_id),
        "occurred_at": utcnow().isoformat(),
    }
    for key, value in fields.items():
        event[key] = str(value) if isinstance(value, UUID) else value
    return event


async def publish_events(redis: Redis | None, events: list[dict[str, Any]]) -> int:
    """Publish events to their auction channels. Returns how many were sent."""
    if redis is None or not events:
        return 0

    sent = 0
    for event in events:
        try:
            await redis.publish(auction_channel(event["auction_id"]), json.dumps(event))
            sent += 1
        except Exception as e:
            logger.warning(f"Failed to publish {event['type']} for auction {event['auction_id']}: {e}")
    return sent
