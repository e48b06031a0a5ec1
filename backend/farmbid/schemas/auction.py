# farmbid/schemas/auction.py
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from uuid import UUID
from datetime import datetime


class ProductCreate(BaseModel):
    """Request schema for listing a product"""
    name: str = Field(..., min_length=1, max_length=200)
    category: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    quantity: float = Field(..., gt=0, description="Available stock")
    unit: str = Field("kg", min_length=1, max_length=20)
    price: float = Field(..., gt=0, description="Asking price per unit")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "Organic Basmati Rice",
                "category": "grains",
                "description": "Aged one year, hand sorted",
                "quantity": 500,
                "unit": "kg",
                "price": 95.0
            }
        }
    )


class ProductResponse(BaseModel):
    id: UUID
    farmer_id: UUID
    name: str
    category: str
    description: Optional[str]
    quantity: float
    unit: str
    price: float
    status: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AuctionCreate(BaseModel):
    """Request schema for opening an auction"""
    product_id: UUID = Field(..., description="Product to auction")
    start_price: float = Field(..., gt=0, description="Opening price")
    reserve_price: Optional[float] = Field(None, gt=0, description="Lowest price the farmer will sell at")
    min_increment: Optional[float] = Field(None, gt=0, description="Smallest raise over the current price")
    quantity: Optional[float] = Field(None, gt=0, description="Defaults to the product's full stock")
    start_time: Optional[datetime] = Field(None, description="Defaults to now")
    end_time: datetime = Field(..., description="When bidding closes")
    description: Optional[str] = Field(None, max_length=1000)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "product_id": "123e4567-e89b-12d3-a456-426614174000",
                "start_price": 1000.0,
                "reserve_price": 1500.0,
                "min_increment": 50.0,
                "quantity": 100,
                "end_time": "2026-11-01T18:00:00Z",
                "description": "Harvest lot A"
            }
        }
    )


class AuctionResponse(BaseModel):
    """Auction state as seen by farmers and traders"""
    id: UUID
    product_id: UUID
    farmer_id: UUID
    start_price: float
    current_price: float = Field(..., description="Highest live bid, or the start price")
    reserve_price: Optional[float]
    min_increment: float
    quantity: float
    start_time: datetime
    end_time: datetime
    description: Optional[str]
    status: str = Field(..., description="active, ended or cancelled")
    winning_bid_id: Optional[UUID]
    closed_at: Optional[datetime]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
