import enum
from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, DateTime, Float, ForeignKey, Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from farmbid.core.database import Base, utcnow

if TYPE_CHECKING:
    from farmbid.models.bid import Bid
    from farmbid.models.product import Product


class AuctionStatus(str, enum.Enum):
    ACTIVE = "active"
    ENDED = "ended"
    CANCELLED = "cancelled"


class Auction(Base):
    """Auction ORM model

    ``version`` is bumped on every UPDATE; a write based on a stale read
    fails with StaleDataError instead of silently overwriting.
    """

    __tablename__ = "auctions"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    product_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("products.id"), nullable=False, index=True
    )
    farmer_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )

    start_price: Mapped[float] = mapped_column(Float, nullable=False)
    current_price: Mapped[float] = mapped_column(Float, nullable=False)
    reserve_price: Mapped[float | None] = mapped_column(Float, nullable=True)
    min_increment: Mapped[float] = mapped_column(Float, nullable=False)
    quantity: Mapped[float] = mapped_column(Float, nullable=False)

    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=AuctionStatus.ACTIVE.value, index=True
    )
    winning_bid_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    product: Mapped["Product"] = relationship("Product", back_populates="auctions")
    bids: Mapped[list["Bid"]] = relationship("Bid", back_populates="auction")

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("min_increment > 0", name="ck_auctions_min_increment_positive"),
        CheckConstraint("quantity > 0", name="ck_auctions_quantity_positive"),
        Index("ix_auctions_status_end_time", "status", "end_time"),
    )

    def __repr__(self) -> str:
        return f"<Auction(id={self.id}, status={self.status}, current_price={self.current_price})>"
