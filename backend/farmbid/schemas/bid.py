# farmbid/schemas/bid.py
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from uuid import UUID
from datetime import datetime


class BidCreate(BaseModel):
    """Request schema for submitting a bid"""
    amount: float = Field(..., gt=0, description="Bid amount (must be positive)")
    quantity: Optional[float] = Field(None, gt=0, description="Defaults to the auction quantity")
    message: Optional[str] = Field(None, max_length=1000, description="Note to the farmer")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "amount": 1100.0,
                "quantity": 100,
                "message": "Can collect on Friday"
            }
        }
    )


class BidResponse(BaseModel):
    """A bid and where it stands"""
    id: UUID
    auction_id: UUID
    product_id: UUID
    bidder_id: UUID
    bidder_name: str
    amount: float
    quantity: float
    message: Optional[str]
    status: str = Field(..., description="pending, accepted, rejected or outbid")
    is_highest_bid: bool
    previous_bid_amount: Optional[float] = Field(None, description="Price this bid displaced")
    expires_at: datetime
    created_at: datetime

    model_config = ConfigDict(
        from_attributes=True,
        json_schema_extra={
            "example": {
                "id": "6a0e1d1c-6b4e-4c8f-9a53-2f3c8e9a1b77",
                "auction_id": "123e4567-e89b-12d3-a456-426614174000",
                "product_id": "0f8fad5b-d9cb-469f-a165-70867728950e",
                "bidder_id": "7c9e6679-7425-40de-944b-e07fc1f90ae7",
                "bidder_name": "Ravi Traders",
                "amount": 1100.0,
                "quantity": 100,
                "message": None,
                "status": "pending",
                "is_highest_bid": True,
                "previous_bid_amount": None,
                "expires_at": "2026-11-01T18:00:00Z",
                "created_at": "2026-10-30T09:12:44Z"
            }
        },
    )
