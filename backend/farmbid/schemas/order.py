# farmbid/schemas/order.py
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from uuid import UUID
from datetime import datetime


class OrderResponse(BaseModel):
    """Purchase record created when a bid is accepted"""
    id: UUID
    bid_id: UUID
    auction_id: UUID
    product_id: UUID
    farmer_id: UUID
    trader_id: UUID
    quantity: float
    price: float
    total_amount: float = Field(..., description="price x quantity")
    status: str
    payment_status: str
    notes: Optional[str]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
