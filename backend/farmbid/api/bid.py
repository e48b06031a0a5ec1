# farmbid/api/bid.py
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, status
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from farmbid.api.auth import get_current_user, require_farmer, require_trader
from farmbid.core.database import get_async_db
from farmbid.core.redis import get_redis
from farmbid.models.user import User
from farmbid.schemas.bid import BidCreate, BidResponse
from farmbid.schemas.order import OrderResponse
from farmbid.services import auction_service, bidding_service

router = APIRouter()


@router.post(
    "/auctions/{auction_id}/bids",
    response_model=BidResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_bid(
    auction_id: UUID,
    bid_data: BidCreate,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key", max_length=128),
    current_user: User = Depends(require_trader),
    redis: Redis = Depends(get_redis),
    db: AsyncSession = Depends(get_async_db),
):
    """
    Place a bid on an active auction (traders only).

    Send an Idempotency-Key header to make retries safe: a repeated key
    returns the bid created by the first request.
    """
    return await bidding_service.submit_bid(
        db,
        current_user,
        auction_id,
        amount=bid_data.amount,
        quantity=bid_data.quantity,
        message=bid_data.message,
        idempotency_key=idempotency_key,
        redis=redis,
    )


@router.get("/auctions/{auction_id}/bids", response_model=List[BidResponse])
async def get_auction_bids(
    auction_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """All bids on an auction, highest first."""
    await auction_service.get_auction(db, auction_id)
    return await bidding_service.list_auction_bids(db, auction_id)


@router.get("/auctions/{auction_id}/bids/highest", response_model=Optional[BidResponse])
async def get_highest_bid(
    auction_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    await auction_service.get_auction(db, auction_id)
    return await bidding_service.get_highest_bid(db, auction_id)


@router.get("/bids/mine", response_model=List[BidResponse])
async def get_my_bids(
    current_user: User = Depends(require_trader),
    db: AsyncSession = Depends(get_async_db),
):
    return await bidding_service.list_bidder_bids(db, current_user.id)


@router.post("/bids/{bid_id}/accept", response_model=OrderResponse)
async def accept_bid(
    bid_id: UUID,
    current_user: User = Depends(require_farmer),
    redis: Redis = Depends(get_redis),
    db: AsyncSession = Depends(get_async_db),
):
    """
    Accept a pending bid on your auction.

    Closes the auction, rejects every other pending bid and returns the
    order. Accepting the same bid again returns the same order.
    """
    return await bidding_service.accept_bid(db, current_user.id, bid_id, redis=redis)


@router.post("/bids/{bid_id}/reject", response_model=BidResponse)
async def reject_bid(
    bid_id: UUID,
    current_user: User = Depends(require_farmer),
    redis: Redis = Depends(get_redis),
    db: AsyncSession = Depends(get_async_db),
):
    """Reject a pending bid; the next-highest pending bid takes the lead."""
    return await bidding_service.reject_bid(db, current_user.id, bid_id, redis=redis)
