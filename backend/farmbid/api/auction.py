# farmbid/api/auction.py
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, status
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from farmbid.api.auth import get_current_user, require_farmer
from farmbid.core.database import get_async_db
from farmbid.core.redis import get_redis
from farmbid.models.user import User
from farmbid.schemas.auction import (
    AuctionCreate,
    AuctionResponse,
    ProductCreate,
    ProductResponse,
)
from farmbid.services import auction_service

router = APIRouter()


@router.post(
    "/products", response_model=ProductResponse, status_code=status.HTTP_201_CREATED
)
async def create_product(
    product_data: ProductCreate,
    current_user: User = Depends(require_farmer),
    db: AsyncSession = Depends(get_async_db),
):
    """
    List a product for sale (farmers only).

    Request body:
    {
        "name": "Organic Basmati Rice",
        "category": "grains",
        "quantity": 500,
        "unit": "kg",
        "price": 95.0
    }
    """
    return await auction_service.create_product(db, current_user, product_data)


@router.get("/products/mine", response_model=List[ProductResponse])
async def get_my_products(
    current_user: User = Depends(require_farmer),
    db: AsyncSession = Depends(get_async_db),
):
    """List products created by the current farmer."""
    return await auction_service.list_farmer_products(db, current_user.id)


@router.post(
    "/auctions", response_model=AuctionResponse, status_code=status.HTTP_201_CREATED
)
async def create_auction(
    auction_data: AuctionCreate,
    current_user: User = Depends(require_farmer),
    db: AsyncSession = Depends(get_async_db),
):
    """
    Open an auction on one of your available products.

    Request body:
    {
        "product_id": "uuid-here",
        "start_price": 1000.0,
        "min_increment": 50.0,
        "end_time": "2026-11-01T18:00:00Z"
    }
    """
    return await auction_service.create_auction(db, current_user, auction_data)


@router.get("/auctions", response_model=List[AuctionResponse])
async def get_active_auctions(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """List auctions currently open for bidding."""
    return await auction_service.list_active_auctions(db)


@router.get("/auctions/mine", response_model=List[AuctionResponse])
async def get_my_auctions(
    current_user: User = Depends(require_farmer),
    db: AsyncSession = Depends(get_async_db),
):
    return await auction_service.list_farmer_auctions(db, current_user.id)


@router.get("/auctions/{auction_id}", response_model=AuctionResponse)
async def get_auction(
    auction_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await auction_service.get_auction(db, auction_id)


@router.post("/auctions/{auction_id}/cancel", response_model=AuctionResponse)
async def cancel_auction(
    auction_id: UUID,
    current_user: User = Depends(require_farmer),
    redis: Redis = Depends(get_redis),
    db: AsyncSession = Depends(get_async_db),
):
    """Withdraw an auction that has no pending bids."""
    return await auction_service.cancel_auction(
        db, current_user.id, auction_id, redis=redis
    )
