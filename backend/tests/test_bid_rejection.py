from datetime import timedelta
from uuid import uuid4

import pytest
from sqlalchemy import select

from conftest import create_user, seed_bid
from farmbid.core.database import utcnow
from farmbid.core.exceptions import ConflictError, NotFoundError, PermissionDeniedError
from farmbid.models import AuctionStatus, Bid, BidStatus, Notification, UserRole
from farmbid.services.bidding_service import reject_bid, submit_bid


async def leaders(db, auction_id):
    result = await db.execute(
        select(Bid.id).where(
            Bid.auction_id == auction_id,
            Bid.status == BidStatus.PENDING.value,
            Bid.is_highest_bid.is_(True),
        )
    )
    return list(result.scalars().all())


async def test_rejecting_highest_promotes_next_pending(db, auction, farmer, trader, other_trader):
    b1 = await seed_bid(db, auction, trader, 900, is_highest=True)
    b2 = await seed_bid(db, auction, other_trader, 850)

    rejected = await reject_bid(db, farmer.id, b1.id)

    await db.refresh(b2)
    await db.refresh(auction)
    assert rejected.status == BidStatus.REJECTED.value
    assert rejected.is_highest_bid is False
    assert b2.is_highest_bid is True
    assert b2.status == BidStatus.PENDING.value
    assert auction.current_price == 850
    assert await leaders(db, auction.id) == [b2.id]


async def test_promotion_picks_greatest_amount(db, auction, farmer, trader, other_trader):
    third = await create_user(db, UserRole.TRADER)
    top = await seed_bid(db, auction, trader, 1300, is_highest=True)
    await seed_bid(db, auction, other_trader, 1100)
    best = await seed_bid(db, auction, third, 1250)

    await reject_bid(db, farmer.id, top.id)

    assert await leaders(db, auction.id) == [best.id]


async def test_promotion_tie_goes_to_earliest_bid(db, auction, farmer, trader, other_trader):
    third = await create_user(db, UserRole.TRADER)
    now = utcnow()
    top = await seed_bid(db, auction, trader, 1300, is_highest=True, created_at=now)
    later = await seed_bid(db, auction, other_trader, 1200, created_at=now - timedelta(seconds=10))
    earlier = await seed_bid(db, auction, third, 1200, created_at=now - timedelta(seconds=20))

    await reject_bid(db, farmer.id, top.id)

    await db.refresh(later)
    assert await leaders(db, auction.id) == [earlier.id]
    assert later.is_highest_bid is False


async def test_outbid_bids_are_not_promoted(db, auction, farmer, trader, other_trader):
    first = await submit_bid(db, trader, auction.id, amount=1100)
    second = await submit_bid(db, other_trader, auction.id, amount=1200)

    await reject_bid(db, farmer.id, second.id)

    await db.refresh(first)
    await db.refresh(auction)
    assert first.status == BidStatus.OUTBID.value
    assert await leaders(db, auction.id) == []
    assert auction.current_price == auction.start_price


async def test_rejecting_non_highest_leaves_leader_alone(db, auction, farmer, trader, other_trader):
    top = await seed_bid(db, auction, trader, 1300, is_highest=True)
    low = await seed_bid(db, auction, other_trader, 1100)
    await db.refresh(auction)
    auction.current_price = 1300
    await db.commit()

    await reject_bid(db, farmer.id, low.id)

    await db.refresh(auction)
    assert await leaders(db, auction.id) == [top.id]
    assert auction.current_price == 1300


async def test_reject_is_a_noop_when_already_rejected(db, auction, farmer, trader):
    bid = await seed_bid(db, auction, trader, 1100, status=BidStatus.REJECTED)

    again = await reject_bid(db, farmer.id, bid.id)

    assert again.id == bid.id
    assert again.status == BidStatus.REJECTED.value
    result = await db.execute(select(Notification))
    assert result.scalars().all() == []


async def test_reject_notifies_bidder(db, auction, farmer, trader, other_trader):
    b1 = await seed_bid(db, auction, trader, 900, is_highest=True)
    await seed_bid(db, auction, other_trader, 850)

    await reject_bid(db, farmer.id, b1.id)

    result = await db.execute(select(Notification).where(Notification.user_id == trader.id))
    notification = result.scalar_one()
    assert notification.title == "Bid Rejected"
    assert notification.details["bid_id"] == str(b1.id)

    result = await db.execute(select(Notification).where(Notification.user_id == other_trader.id))
    assert result.scalar_one().title == "Highest Bid"


async def test_cannot_reject_accepted_bid(db, auction, farmer, trader):
    bid = await seed_bid(db, auction, trader, 1100, status=BidStatus.ACCEPTED, is_highest=True)
    bid_id = bid.id

    with pytest.raises(ConflictError):
        await reject_bid(db, farmer.id, bid_id)


async def test_cannot_reject_on_inactive_auction(db, auction, farmer, trader):
    bid = await seed_bid(db, auction, trader, 1100, is_highest=True)
    bid_id = bid.id
    auction.status = AuctionStatus.ENDED.value
    await db.commit()

    with pytest.raises(ConflictError):
        await reject_bid(db, farmer.id, bid_id)


async def test_only_owner_can_reject(db, auction, trader):
    bid = await seed_bid(db, auction, trader, 1100, is_highest=True)
    bid_id = bid.id
    intruder = await create_user(db, UserRole.FARMER)
    intruder_id = intruder.id

    with pytest.raises(PermissionDeniedError):
        await reject_bid(db, intruder_id, bid_id)

    rejected = await db.get(Bid, bid_id, populate_existing=True)
    assert rejected.status == BidStatus.PENDING.value


async def test_reject_unknown_bid(db, farmer):
    with pytest.raises(NotFoundError):
        await reject_bid(db, farmer.id, uuid4())
