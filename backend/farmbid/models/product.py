import enum
from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Float, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from farmbid.core.database import Base, utcnow

if TYPE_CHECKING:
    from farmbid.models.auction import Auction
    from farmbid.models.user import User


class ProductStatus(str, enum.Enum):
    AVAILABLE = "available"
    IN_AUCTION = "in_auction"
    SOLD = "sold"


class Product(Base):
    """Product ORM model"""

    __tablename__ = "products"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    farmer_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    quantity: Mapped[float] = mapped_column(Float, nullable=False)
    unit: Mapped[str] = mapped_column(String(20), nullable=False, default="kg")
    price: Mapped[float] = mapped_column(Float, nullable=False)

    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=ProductStatus.AVAILABLE.value, index=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    farmer: Mapped["User"] = relationship("User", back_populates="products")
    auctions: Mapped[list["Auction"]] = relationship(
        "Auction", back_populates="product"
    )

    def __repr__(self) -> str:
        return f"<Product(id={self.id}, name={self.name}, status={self.status})>"
