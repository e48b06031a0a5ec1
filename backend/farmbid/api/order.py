# farmbid/api/order.py
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from farmbid.api.auth import get_current_user
from farmbid.core.database import get_async_db
from farmbid.models.user import User
from farmbid.schemas.order import OrderResponse
from farmbid.services import order_service

router = APIRouter()


@router.get("/orders", response_model=List[OrderResponse])
async def get_orders(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Orders you sold (farmer) or bought (trader), newest first."""
    return await order_service.list_orders(db, current_user.id)


@router.get("/orders/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await order_service.get_order(db, current_user.id, order_id)
