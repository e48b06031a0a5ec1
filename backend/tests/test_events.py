import asyncio
import json
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

from farmbid.api.websocket import ConnectionManager, get_auction_snapshot
from farmbid.services import events
from farmbid.services.bidding_service import submit_bid
from farmbid.services.notification_service import PendingNotification, deliver_notifications
from farmbid.tasks.event_relay import relay_message


class FakeWebSocket:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    async def accept(self):
        pass

    async def send_json(self, message):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(message)


async def next_message(pubsub, timeout=1.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while asyncio.get_running_loop().time() < deadline:
        message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=0.1)
        if message is not None:
            return message
    return None


def test_build_event_stringifies_ids():
    auction_id, bid_id = uuid4(), uuid4()
    event = events.build_event(events.BID_PLACED, auction_id, bid_id=bid_id, amount=1100.0)

    assert event["type"] == "bid_placed"
    assert event["auction_id"] == str(auction_id)
    assert event["bid_id"] == str(bid_id)
    assert event["amount"] == 1100.0
    assert "occurred_at" in event
    json.dumps(event)


async def test_submission_publishes_to_auction_channel(db, redis, auction, trader, other_trader):
    pubsub = redis.pubsub()
    await pubsub.subscribe(events.auction_channel(auction.id))

    await submit_bid(db, trader, auction.id, amount=1100, redis=redis)
    placed = json.loads((await next_message(pubsub))["data"])
    assert placed["type"] == events.BID_PLACED
    assert placed["amount"] == 1100
    assert placed["current_price"] == 1100

    await submit_bid(db, other_trader, auction.id, amount=1200, redis=redis)
    outbid = json.loads((await next_message(pubsub))["data"])
    placed = json.loads((await next_message(pubsub))["data"])
    assert outbid["type"] == events.BID_OUTBID
    assert outbid["bidder_id"] == str(trader.id)
    assert placed["bidder_id"] == str(other_trader.id)

    await pubsub.unsubscribe()
    await pubsub.aclose()


async def test_publish_failure_is_swallowed():
    redis = MagicMock()
    redis.publish = AsyncMock(side_effect=ConnectionError("redis down"))
    event = events.build_event(events.AUCTION_CLOSED, uuid4())

    assert await events.publish_events(redis, [event]) == 0
    assert await events.publish_events(None, [event]) == 0


async def test_notification_failure_does_not_raise():
    db = MagicMock()
    db.add.side_effect = RuntimeError("db gone")
    db.rollback = AsyncMock()

    delivered = await deliver_notifications(
        db, [PendingNotification(user_id=uuid4(), title="t", message="m", type="bid")]
    )

    assert delivered == 0
    db.rollback.assert_awaited_once()


async def test_relay_forwards_to_watchers_of_that_auction():
    connections = ConnectionManager()
    watching, elsewhere = FakeWebSocket(), FakeWebSocket()
    auction_id = str(uuid4())
    await connections.connect(watching, auction_id)
    await connections.connect(elsewhere, str(uuid4()))

    event = events.build_event(events.BID_ACCEPTED, auction_id)
    sent = await relay_message(
        {
            "type": "pmessage",
            "pattern": "auction:*",
            "channel": events.auction_channel(auction_id),
            "data": json.dumps(event),
        },
        connections,
    )

    assert sent == 1
    assert watching.sent == [event]
    assert elsewhere.sent == []


async def test_relay_ignores_subscription_and_malformed_messages():
    connections = ConnectionManager()
    socket = FakeWebSocket()
    auction_id = str(uuid4())
    await connections.connect(socket, auction_id)

    assert await relay_message({"type": "psubscribe", "channel": "auction:*", "data": 1}, connections) == 0
    assert await relay_message(
        {"type": "pmessage", "channel": f"auction:{auction_id}", "data": "not json"}, connections
    ) == 0
    assert socket.sent == []


async def test_broken_socket_is_dropped():
    connections = ConnectionManager()
    good, broken = FakeWebSocket(), FakeWebSocket(fail=True)
    auction_id = str(uuid4())
    await connections.connect(good, auction_id)
    await connections.connect(broken, auction_id)

    assert await connections.broadcast_to_auction(auction_id, {"type": "ping"}) == 1
    assert connections.active_connections[auction_id] == {good}


async def test_snapshot_contains_auction_and_bids(db, auction, trader):
    await submit_bid(db, trader, auction.id, amount=1100)

    snapshot = await get_auction_snapshot(db, auction.id)

    assert snapshot["auction"]["id"] == str(auction.id)
    assert snapshot["auction"]["current_price"] == 1100
    assert [b["amount"] for b in snapshot["bids"]] == [1100]
    json.dumps(snapshot)
