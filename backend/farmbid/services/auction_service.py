import logging
from datetime import datetime
from typing import Any
from uuid import UUID

from redis.asyncio import Redis
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from farmbid.core.config import settings
from farmbid.core.database import as_utc, utcnow
from farmbid.core.exceptions import (
    ConflictError,
    InvalidAuctionError,
    NotFoundError,
    PermissionDeniedError,
)
from farmbid.models.auction import Auction, AuctionStatus
from farmbid.models.bid import Bid, BidStatus
from farmbid.models.notification import NotificationType
from farmbid.models.product import Product, ProductStatus
from farmbid.models.user import User
from farmbid.schemas.auction import AuctionCreate, ProductCreate
from farmbid.services import events
from farmbid.services.bidding_service import (
    close_with_winner,
    find_leading_pending_bid,
    get_auction_for_update,
)
from farmbid.services.notification_service import (
    PendingNotification,
    deliver_notifications,
    format_amount,
)

logger = logging.getLogger(__name__)


# ============================================================================
# Products
# ============================================================================


async def create_product(db: AsyncSession, farmer: User, data: ProductCreate) -> Product:
    product = Product(
        farmer_id=farmer.id,
        name=data.name,
        category=data.category,
        description=data.description,
        quantity=data.quantity,
        unit=data.unit,
        price=data.price,
        status=ProductStatus.AVAILABLE.value,
    )
    db.add(product)
    await db.commit()
    await db.refresh(product)

    logger.info(f"Product {product.id} listed by farmer {farmer.id}")
    return product


async def list_farmer_products(db: AsyncSession, farmer_id: UUID) -> list[Product]:
    result = await db.execute(
        select(Product)
        .where(Product.farmer_id == farmer_id)
        .order_by(Product.created_at.desc())
    )
    return list(result.scalars().all())


# ============================================================================
# Auctions
# ============================================================================


async def create_auction(db: AsyncSession, farmer: User, data: AuctionCreate) -> Auction:
    """
    Open an auction on one of the farmer's available products.

    The product moves to ``in_auction`` and the auction's current price
    starts at its start price.
    """
    try:
        product = await db.get(
            Product, data.product_id, with_for_update=True, populate_existing=True
        )
        if product is None:
            raise NotFoundError(f"Product {data.product_id} not found")
        if product.farmer_id != farmer.id:
            raise PermissionDeniedError("Only the product owner can auction it")
        if product.status != ProductStatus.AVAILABLE.value:
            raise ConflictError(f"Product is not available (status: {product.status})")

        now = utcnow()
        start_time = as_utc(data.start_time) if data.start_time else now
        end_time = as_utc(data.end_time)
        if end_time <= start_time:
            raise InvalidAuctionError("Auction must end after it starts")
        if end_time <= now:
            raise InvalidAuctionError("Auction end time must be in the future")

        quantity = product.quantity if data.quantity is None else data.quantity
        if quantity > product.quantity:
            raise InvalidAuctionError(
                f"Auction quantity exceeds available stock ({product.quantity} {product.unit})"
            )
        if data.reserve_price is not None and data.reserve_price < data.start_price:
            raise InvalidAuctionError("Reserve price cannot be below the start price")

        auction = Auction(
            product_id=product.id,
            farmer_id=farmer.id,
            start_price=data.start_price,
            current_price=data.start_price,
            reserve_price=data.reserve_price,
            min_increment=data.min_increment or settings.DEFAULT_MIN_INCREMENT,
            quantity=quantity,
            start_time=start_time,
            end_time=end_time,
            description=data.description,
            status=AuctionStatus.ACTIVE.value,
        )
        db.add(auction)
        product.status = ProductStatus.IN_AUCTION.value

        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        f"Auction {auction.id} opened on product {product.id}, ends {end_time.isoformat()}"
    )
    return auction


async def get_auction(db: AsyncSession, auction_id: UUID) -> Auction:
    auction = await db.get(Auction, auction_id)
    if auction is None:
        raise NotFoundError(f"Auction {auction_id} not found")
    return auction


async def list_active_auctions(db: AsyncSession, limit: int = 100) -> list[Auction]:
    """Open auctions, soonest-ending first."""
    result = await db.execute(
        select(Auction)
        .where(Auction.status == AuctionStatus.ACTIVE.value)
        .order_by(Auction.end_time.asc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def list_farmer_auctions(db: AsyncSession, farmer_id: UUID) -> list[Auction]:
    result = await db.execute(
        select(Auction)
        .where(Auction.farmer_id == farmer_id)
        .order_by(Auction.created_at.desc())
    )
    return list(result.scalars().all())


async def cancel_auction(
    db: AsyncSession,
    farmer_id: UUID,
    auction_id: UUID,
    redis: Redis | None = None,
) -> Auction:
    """Withdraw an active auction that has not received any pending bids."""
    cancelled = False
    try:
        auction = await get_auction_for_update(db, auction_id)
        if auction.farmer_id != farmer_id:
            raise PermissionDeniedError("Only the auction owner can cancel it")

        if auction.status != AuctionStatus.CANCELLED.value:
            if auction.status != AuctionStatus.ACTIVE.value:
                raise ConflictError(f"Auction is not active (status: {auction.status})")

            pending = await db.execute(
                select(Bid.id)
                .where(
                    Bid.auction_id == auction.id,
                    Bid.status == BidStatus.PENDING.value,
                )
                .limit(1)
            )
            if pending.first() is not None:
                raise ConflictError("Auction has pending bids and cannot be cancelled")

            product = await db.get(
                Product, auction.product_id, with_for_update=True, populate_existing=True
            )
            if product is not None and product.status == ProductStatus.IN_AUCTION.value:
                product.status = ProductStatus.AVAILABLE.value

            auction.status = AuctionStatus.CANCELLED.value
            auction.closed_at = utcnow()
            cancelled = True

        await db.commit()
    except StaleDataError:
        await db.rollback()
        raise ConflictError("Auction was modified concurrently, please retry")
    except Exception:
        await db.rollback()
        raise

    if cancelled:
        logger.info(f"Auction {auction_id} cancelled by farmer {farmer_id}")
        await events.publish_events(
            redis, [events.build_event(events.AUCTION_CANCELLED, auction.id)]
        )
    return auction


# ============================================================================
# Expiry
# ============================================================================


async def _close_without_winner(
    db: AsyncSession, auction: Auction, now: datetime, reserve_met: bool = False
) -> tuple[list[PendingNotification], list[dict[str, Any]]]:
    result = await db.execute(
        select(Bid)
        .where(
            Bid.auction_id == auction.id,
            Bid.status == BidStatus.PENDING.value,
        )
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    losers = list(result.scalars().all())
    for loser in losers:
        loser.status = BidStatus.REJECTED.value
        loser.is_highest_bid = False

    product = await db.get(
        Product, auction.product_id, with_for_update=True, populate_existing=True
    )
    if product is not None and product.status == ProductStatus.IN_AUCTION.value:
        product.status = ProductStatus.AVAILABLE.value
    product_name = product.name if product is not None else "your product"

    auction.status = AuctionStatus.ENDED.value
    auction.closed_at = now
    await db.flush()

    top_bid = format_amount(auction.current_price)
    if losers and reserve_met:
        message = (
            f"Your auction for {product_name} ended with a top bid of {top_bid}; "
            "expired auctions are not settled automatically, so no bid was accepted"
        )
    elif losers:
        message = (
            f"Your auction for {product_name} ended with a top bid of {top_bid}, "
            "below the reserve price"
        )
    else:
        message = f"Your auction for {product_name} ended without any bids"

    notifications = [
        PendingNotification(
            user_id=auction.farmer_id,
            title="Auction Ended",
            message=message,
            type=NotificationType.AUCTION.value,
            details={"auction_id": auction.id, "product_id": auction.product_id},
        )
    ]
    notifications.extend(
        PendingNotification(
            user_id=loser.bidder_id,
            title="Auction Ended",
            message=f"The auction for {product_name} closed without accepting your bid",
            type=NotificationType.BID.value,
            details={"bid_id": loser.id, "auction_id": auction.id},
        )
        for loser in losers
    )

    auction_events = [
        events.build_event(events.BID_REJECTED, auction.id, bid_id=loser.id)
        for loser in losers
    ]
    auction_events.append(
        events.build_event(events.AUCTION_CLOSED, auction.id, winning_bid_id=None)
    )
    return notifications, auction_events


async def close_expired_auction(
    db: AsyncSession,
    auction_id: UUID,
    now: datetime | None = None,
    redis: Redis | None = None,
    auto_accept: bool | None = None,
) -> Auction | None:
    """
    Close one auction whose end time has passed.

    Returns None when the auction was already closed or is not yet due.
    """
    now = now or utcnow()
    if auto_accept is None:
        auto_accept = settings.AUCTION_AUTO_ACCEPT_ON_EXPIRY

    try:
        auction = await get_auction_for_update(db, auction_id)
        if auction.status != AuctionStatus.ACTIVE.value or as_utc(auction.end_time) > now:
            await db.commit()
            return None

        leader = await find_leading_pending_bid(db, auction.id)
        reserve_met = leader is not None and (
            auction.reserve_price is None or leader.amount >= auction.reserve_price
        )

        if auto_accept and reserve_met:
            order, notifications, auction_events = await close_with_winner(
                db, auction, leader, now
            )
            outcome = f"sold to bid {leader.id} (order {order.id})"
        else:
            notifications, auction_events = await _close_without_winner(
                db, auction, now, reserve_met=reserve_met
            )
            outcome = "closed without a winner"

        await db.commit()
    except StaleDataError:
        await db.rollback()
        raise ConflictError("Auction was modified concurrently, please retry")
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Expired auction {auction_id} {outcome}")
    await deliver_notifications(db, notifications)
    await events.publish_events(redis, auction_events)
    return auction


async def close_expired_auctions(
    db: AsyncSession,
    now: datetime | None = None,
    redis: Redis | None = None,
    auto_accept: bool | None = None,
) -> list[UUID]:
    """Close every active auction past its end time. Returns the closed ids."""
    now = now or utcnow()
    result = await db.execute(
        select(Auction.id).where(
            Auction.status == AuctionStatus.ACTIVE.value,
            Auction.end_time <= now,
        )
    )
    due = list(result.scalars().all())

    closed: list[UUID] = []
    for auction_id in due:
        try:
            auction = await close_expired_auction(
                db, auction_id, now=now, redis=redis, auto_accept=auto_accept
            )
        except Exception as e:
            logger.error(f"Failed to close expired auction {auction_id}: {e}")
            continue
        if auction is not None:
            closed.append(auction_id)

    return closed
