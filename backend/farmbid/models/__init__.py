"""
SQLAlchemy ORM Models

All database models unified export point
"""

from farmbid.models.auction import Auction, AuctionStatus
from farmbid.models.bid import Bid, BidStatus
from farmbid.models.notification import Notification, NotificationType
from farmbid.models.order import Order, OrderStatus, PaymentStatus
from farmbid.models.product import Product, ProductStatus
from farmbid.models.user import User, UserRole

__all__ = [
    "User",
    "UserRole",
    "Product",
    "ProductStatus",
    "Auction",
    "AuctionStatus",
    "Bid",
    "BidStatus",
    "Order",
    "OrderStatus",
    "PaymentStatus",
    "Notification",
    "NotificationType",
]
