"""Bid lifecycle: submission, acceptance and rejection.

Every transition locks the auction row first (then bid rows), so transitions
on the same auction are serialized. The auction's version column turns a
write based on a stale read into a ConflictError instead of a lost update.
"""

import logging
from datetime import datetime
from typing import Any
from uuid import UUID

from redis.asyncio import Redis
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from farmbid.core.database import as_utc, utcnow
from farmbid.core.exceptions import (
    ConflictError,
    InvalidBidError,
    NotFoundError,
    PermissionDeniedError,
)
from farmbid.models.auction import Auction, AuctionStatus
from farmbid.models.bid import Bid, BidStatus
from farmbid.models.notification import NotificationType
from farmbid.models.order import Order
from farmbid.models.product import Product, ProductStatus
from farmbid.models.user import User
from farmbid.services import events
from farmbid.services.notification_service import (
    PendingNotification,
    deliver_notifications,
    format_amount,
)
from farmbid.services.order_service import build_order_from_bid, get_order_for_bid

logger = logging.getLogger(__name__)


async def get_auction_for_update(db: AsyncSession, auction_id: UUID) -> Auction:
    """Load an auction with a row lock held until the transaction ends."""
    result = await db.execute(
        select(Auction)
        .where(Auction.id == auction_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    auction = result.scalar_one_or_none()
    if auction is None:
        raise NotFoundError(f"Auction {auction_id} not found")
    return auction


async def _get_bid(db: AsyncSession, bid_id: UUID, for_update: bool = False) -> Bid:
    query = select(Bid).where(Bid.id == bid_id)
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(query)
    bid = result.scalar_one_or_none()
    if bid is None:
        raise NotFoundError(f"Bid {bid_id} not found")
    return bid


async def _get_bid_by_idempotency_key(
    db: AsyncSession, bidder_id: UUID, auction_id: UUID, idempotency_key: str
) -> Bid | None:
    """The bid this key already produced on this auction, if any.

    A key belongs to one auction; reusing it elsewhere is a conflict.
    """
    result = await db.execute(
        select(Bid)
        .where(
            Bid.bidder_id == bidder_id,
            Bid.idempotency_key == idempotency_key,
        )
        .order_by(Bid.created_at.asc())
    )
    existing = result.scalars().first()
    if existing is not None and existing.auction_id != auction_id:
        raise ConflictError("Idempotency key was already used on another auction")
    return existing


async def find_leading_pending_bid(
    db: AsyncSession, auction_id: UUID, exclude_bid_id: UUID | None = None
) -> Bid | None:
    """Highest pending bid; ties go to the earliest submission."""
    query = select(Bid).where(
        Bid.auction_id == auction_id,
        Bid.status == BidStatus.PENDING.value,
    )
    if exclude_bid_id is not None:
        query = query.where(Bid.id != exclude_bid_id)
    result = await db.execute(
        query.order_by(Bid.amount.desc(), Bid.created_at.asc(), Bid.id.asc())
        .limit(1)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def _ensure_open_for_bidding(auction: Auction, now: datetime) -> None:
    if auction.status != AuctionStatus.ACTIVE.value:
        raise ConflictError(f"Auction is not active (status: {auction.status})")
    if now < as_utc(auction.start_time):
        raise ConflictError("Auction has not started yet")
    if now >= as_utc(auction.end_time):
        raise ConflictError("Auction has ended")


async def _dispatch(
    db: AsyncSession,
    redis: Redis | None,
    notifications: list[PendingNotification],
    auction_events: list[dict[str, Any]],
) -> None:
    await deliver_notifications(db, notifications)
    await events.publish_events(redis, auction_events)


# ============================================================================
# Submission
# ============================================================================


async def submit_bid(
    db: AsyncSession,
    bidder: User,
    auction_id: UUID,
    amount: float,
    quantity: float | None = None,
    message: str | None = None,
    idempotency_key: str | None = None,
    redis: Redis | None = None,
) -> Bid:
    """
    Place a bid on an active auction.

    The new bid becomes the auction's highest bid; whichever bid held that
    position is marked outbid and its bidder is notified. Resubmitting with
    an idempotency key already used by this bidder on this auction returns
    the original bid.
    """
    bidder_id = bidder.id
    bidder_name = bidder.display_name
    if idempotency_key:
        existing = await _get_bid_by_idempotency_key(
            db, bidder_id, auction_id, idempotency_key
        )
        if existing is not None:
            return existing

    notifications: list[PendingNotification] = []
    auction_events: list[dict[str, Any]] = []

    try:
        auction = await get_auction_for_update(db, auction_id)
        now = utcnow()

        if auction.farmer_id == bidder_id:
            raise PermissionDeniedError("Farmers cannot bid on their own auction")
        _ensure_open_for_bidding(auction, now)

        minimum = auction.current_price + auction.min_increment
        if amount < minimum:
            raise InvalidBidError(f"Bid must be at least {format_amount(minimum)}")

        bid_quantity = auction.quantity if quantity is None else quantity
        if bid_quantity <= 0 or bid_quantity > auction.quantity:
            raise InvalidBidError(
                f"Bid quantity must be between 0 and {auction.quantity}"
            )

        result = await db.execute(
            select(Bid)
            .where(
                Bid.auction_id == auction.id,
                Bid.status == BidStatus.PENDING.value,
                Bid.is_highest_bid.is_(True),
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        displaced = list(result.scalars().all())

        bid = Bid(
            auction_id=auction.id,
            product_id=auction.product_id,
            bidder_id=bidder_id,
            bidder_name=bidder_name,
            amount=amount,
            quantity=bid_quantity,
            message=message,
            status=BidStatus.PENDING.value,
            is_highest_bid=True,
            previous_bid_amount=auction.current_price if displaced else None,
            idempotency_key=idempotency_key,
            expires_at=auction.end_time,
        )
        db.add(bid)

        for previous in displaced:
            previous.status = BidStatus.OUTBID.value
            previous.is_highest_bid = False
            if previous.bidder_id != bidder_id:
                notifications.append(
                    PendingNotification(
                        user_id=previous.bidder_id,
                        title="Bid Outbid",
                        message=(
                            f"Your bid of {format_amount(previous.amount)} has been "
                            f"outbid with {format_amount(amount)}"
                        ),
                        type=NotificationType.BID.value,
                        details={"bid_id": previous.id, "auction_id": auction.id},
                    )
                )

        auction.current_price = amount
        await db.flush()

        notifications.append(
            PendingNotification(
                user_id=auction.farmer_id,
                title="New Bid",
                message=f"{bid.bidder_name} placed a bid of {format_amount(amount)}",
                type=NotificationType.BID.value,
                details={"bid_id": bid.id, "auction_id": auction.id},
            )
        )
        for previous in displaced:
            auction_events.append(
                events.build_event(
                    events.BID_OUTBID,
                    auction.id,
                    bid_id=previous.id,
                    bidder_id=previous.bidder_id,
                    amount=previous.amount,
                )
            )
        auction_events.append(
            events.build_event(
                events.BID_PLACED,
                auction.id,
                bid_id=bid.id,
                bidder_id=bid.bidder_id,
                bidder_name=bid.bidder_name,
                amount=bid.amount,
                quantity=bid.quantity,
                current_price=auction.current_price,
            )
        )

        await db.commit()
    except IntegrityError:
        await db.rollback()
        if idempotency_key:
            existing = await _get_bid_by_idempotency_key(
                db, bidder_id, auction_id, idempotency_key
            )
            if existing is not None:
                return existing
        raise ConflictError("Bid could not be recorded, please retry")
    except StaleDataError:
        await db.rollback()
        raise ConflictError("Auction was modified concurrently, please retry")
    except Exception:
        await db.rollback()
        raise

    logger.info(
        f"Bid {bid.id} placed on auction {auction_id}: {bid.amount} by {bidder_id}"
    )
    await _dispatch(db, redis, notifications, auction_events)
    return bid


# ============================================================================
# Acceptance
# ============================================================================


async def close_with_winner(
    db: AsyncSession, auction: Auction, bid: Bid, now: datetime
) -> tuple[Order, list[PendingNotification], list[dict[str, Any]]]:
    """
    Apply the acceptance transition inside the caller's transaction.

    The caller must hold the auction lock and commit afterwards.
    """
    product = await db.get(
        Product, auction.product_id, with_for_update=True, populate_existing=True
    )
    if product is None:
        raise NotFoundError(f"Product {auction.product_id} not found")

    bid.status = BidStatus.ACCEPTED.value
    bid.is_highest_bid = True

    result = await db.execute(
        select(Bid)
        .where(
            Bid.auction_id == auction.id,
            Bid.status == BidStatus.PENDING.value,
            Bid.id != bid.id,
        )
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    losers = list(result.scalars().all())
    for loser in losers:
        loser.status = BidStatus.REJECTED.value
        loser.is_highest_bid = False

    auction.status = AuctionStatus.ENDED.value
    auction.winning_bid_id = bid.id
    auction.current_price = bid.amount
    auction.closed_at = now
    product.status = ProductStatus.SOLD.value

    order = build_order_from_bid(bid, auction)
    db.add(order)
    await db.flush()

    notifications = [
        PendingNotification(
            user_id=bid.bidder_id,
            title="Bid Accepted",
            message=(
                f"Your bid of {format_amount(bid.amount)} for {product.name} "
                "has been accepted"
            ),
            type=NotificationType.BID.value,
            details={"bid_id": bid.id, "product_id": product.id, "order_id": order.id},
        )
    ]
    notifications.extend(
        PendingNotification(
            user_id=loser.bidder_id,
            title="Bid Rejected",
            message=f"Your bid for {product.name} was not accepted",
            type=NotificationType.BID.value,
            details={"bid_id": loser.id, "product_id": product.id},
        )
        for loser in losers
    )

    auction_events = [
        events.build_event(
            events.BID_ACCEPTED,
            auction.id,
            bid_id=bid.id,
            bidder_id=bid.bidder_id,
            amount=bid.amount,
            order_id=order.id,
        )
    ]
    auction_events.extend(
        events.build_event(events.BID_REJECTED, auction.id, bid_id=loser.id)
        for loser in losers
    )
    auction_events.append(
        events.build_event(
            events.AUCTION_CLOSED,
            auction.id,
            winning_bid_id=bid.id,
            final_price=bid.amount,
        )
    )
    return order, notifications, auction_events


async def accept_bid(
    db: AsyncSession,
    farmer_id: UUID,
    bid_id: UUID,
    redis: Redis | None = None,
) -> Order:
    """
    Accept a pending bid, closing its auction.

    Creates the order, rejects every other pending bid and marks the product
    sold, all in one transaction. Accepting an already-accepted bid returns
    its existing order.
    """
    notifications: list[PendingNotification] = []
    auction_events: list[dict[str, Any]] = []

    try:
        bid = await _get_bid(db, bid_id)
        auction = await get_auction_for_update(db, bid.auction_id)
        bid = await _get_bid(db, bid_id, for_update=True)

        if auction.farmer_id != farmer_id:
            raise PermissionDeniedError("Only the auction owner can accept bids")

        if bid.status == BidStatus.ACCEPTED.value:
            order = await get_order_for_bid(db, bid.id)
            if order is None:
                raise ConflictError(f"Bid {bid_id} is accepted but has no order")
        else:
            if bid.status != BidStatus.PENDING.value:
                raise ConflictError(f"Bid is not pending (status: {bid.status})")
            if auction.status != AuctionStatus.ACTIVE.value:
                raise ConflictError(f"Auction is not active (status: {auction.status})")

            order, notifications, auction_events = await close_with_winner(
                db, auction, bid, utcnow()
            )

        await db.commit()
    except IntegrityError:
        await db.rollback()
        order = await get_order_for_bid(db, bid_id)
        if order is None:
            raise ConflictError("Bid could not be accepted, please retry")
        return order
    except StaleDataError:
        await db.rollback()
        raise ConflictError("Auction was modified concurrently, please retry")
    except Exception:
        await db.rollback()
        raise

    if auction_events:
        logger.info(f"Bid {bid_id} accepted, auction {auction.id} closed with order {order.id}")
    await _dispatch(db, redis, notifications, auction_events)
    return order


# ============================================================================
# Rejection
# ============================================================================


async def reject_bid(
    db: AsyncSession,
    farmer_id: UUID,
    bid_id: UUID,
    redis: Redis | None = None,
) -> Bid:
    """
    Reject a pending bid.

    If it was the highest bid, the next-best pending bid is promoted and the
    auction's current price follows it (back to the start price when no
    pending bid remains). Rejecting an already-rejected bid is a no-op.

    Submission always marks the previous leader outbid, so a second pending
    bid only exists when rows were written outside submit_bid (imports,
    manual corrections); outbid bids are never promoted.
    """
    notifications: list[PendingNotification] = []
    auction_events: list[dict[str, Any]] = []

    try:
        bid = await _get_bid(db, bid_id)
        auction = await get_auction_for_update(db, bid.auction_id)
        bid = await _get_bid(db, bid_id, for_update=True)

        if auction.farmer_id != farmer_id:
            raise PermissionDeniedError("Only the auction owner can reject bids")

        if bid.status == BidStatus.REJECTED.value:
            await db.commit()
            return bid
        if bid.status != BidStatus.PENDING.value:
            raise ConflictError(f"Bid is not pending (status: {bid.status})")
        if auction.status != AuctionStatus.ACTIVE.value:
            raise ConflictError(f"Auction is not active (status: {auction.status})")

        was_highest = bid.is_highest_bid
        bid.status = BidStatus.REJECTED.value
        bid.is_highest_bid = False
        # the highest flag must be cleared in the database before another bid takes it
        await db.flush()

        promoted = None
        if was_highest:
            promoted = await find_leading_pending_bid(db, auction.id, exclude_bid_id=bid.id)
            if promoted is not None:
                promoted.is_highest_bid = True
                auction.current_price = promoted.amount
            else:
                auction.current_price = auction.start_price

        # touch the auction so its version moves even when the price does not
        auction.updated_at = utcnow()
        await db.flush()

        product = await db.get(Product, auction.product_id)
        product_name = product.name if product is not None else "the product"
        notifications.append(
            PendingNotification(
                user_id=bid.bidder_id,
                title="Bid Rejected",
                message=(
                    f"Your bid of {format_amount(bid.amount)} for {product_name} "
                    "has been rejected"
                ),
                type=NotificationType.BID.value,
                details={"bid_id": bid.id, "product_id": auction.product_id},
            )
        )
        auction_events.append(
            events.build_event(events.BID_REJECTED, auction.id, bid_id=bid.id)
        )
        if promoted is not None:
            notifications.append(
                PendingNotification(
                    user_id=promoted.bidder_id,
                    title="Highest Bid",
                    message=(
                        f"Your bid of {format_amount(promoted.amount)} for "
                        f"{product_name} is now the highest bid"
                    ),
                    type=NotificationType.BID.value,
                    details={"bid_id": promoted.id, "product_id": auction.product_id},
                )
            )
            auction_events.append(
                events.build_event(
                    events.BID_PROMOTED,
                    auction.id,
                    bid_id=promoted.id,
                    bidder_id=promoted.bidder_id,
                    amount=promoted.amount,
                    current_price=auction.current_price,
                )
            )

        await db.commit()
    except StaleDataError:
        await db.rollback()
        raise ConflictError("Auction was modified concurrently, please retry")
    except Exception:
        await db.rollback()
        raise

    logger.info(
        f"Bid {bid_id} rejected on auction {auction.id}"
        + (f", promoted {promoted.id}" if promoted is not None else "")
    )
    await _dispatch(db, redis, notifications, auction_events)
    return bid


# ============================================================================
# Queries
# ============================================================================


async def list_auction_bids(db: AsyncSession, auction_id: UUID) -> list[Bid]:
    """All bids on an auction, best first."""
    result = await db.execute(
        select(Bid)
        .where(Bid.auction_id == auction_id)
        .order_by(Bid.amount.desc(), Bid.created_at.asc())
    )
    return list(result.scalars().all())


async def get_highest_bid(db: AsyncSession, auction_id: UUID) -> Bid | None:
    result = await db.execute(
        select(Bid).where(
            Bid.auction_id == auction_id,
            Bid.is_highest_bid.is_(True),
            Bid.status == BidStatus.PENDING.value,
        )
    )
    return result.scalars().first()


async def list_bidder_bids(db: AsyncSession, bidder_id: UUID, limit: int = 50) -> list[Bid]:
    result = await db.execute(
        select(Bid)
        .where(Bid.bidder_id == bidder_id)
        .order_by(Bid.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
