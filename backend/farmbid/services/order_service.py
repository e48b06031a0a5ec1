from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from farmbid.core.exceptions import NotFoundError
from farmbid.models.auction import Auction
from farmbid.models.bid import Bid
from farmbid.models.order import Order


def build_order_from_bid(bid: Bid, auction: Auction) -> Order:
    """Derive the purchase record for an accepted bid."""
    return Order(
        bid_id=bid.id,
        auction_id=auction.id,
        product_id=auction.product_id,
        farmer_id=auction.farmer_id,
        trader_id=bid.bidder_id,
        quantity=bid.quantity,
        price=bid.amount,
        total_amount=bid.amount * bid.quantity,
    )


async def get_order_for_bid(db: AsyncSession, bid_id: UUID) -> Order | None:
    result = await db.execute(select(Order).where(Order.bid_id == bid_id))
    return result.scalar_one_or_none()


async def list_orders(db: AsyncSession, user_id: UUID, limit: int = 50) -> list[Order]:
    """Orders where the user is either the selling farmer or the buying trader."""
    result = await db.execute(
        select(Order)
        .where(or_(Order.farmer_id == user_id, Order.trader_id == user_id))
        .order_by(Order.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def get_order(db: AsyncSession, user_id: UUID, order_id: UUID) -> Order:
    result = await db.execute(
        select(Order).where(
            Order.id == order_id,
            or_(Order.farmer_id == user_id, Order.trader_id == user_id),
        )
    )
    order = result.scalar_one_or_none()
    if order is None:
        raise NotFoundError(f"Order {order_id} not found")
    return order
