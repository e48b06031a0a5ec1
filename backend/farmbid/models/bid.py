import enum
from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from farmbid.core.database import Base, utcnow

if TYPE_CHECKING:
    from farmbid.models.auction import Auction


class BidStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    OUTBID = "outbid"


class Bid(Base):
    """Bid ORM model

    Bids are never deleted; terminal outcomes are status values.
    """

    __tablename__ = "bids"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    auction_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("auctions.id"), nullable=False, index=True
    )
    product_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("products.id"), nullable=False, index=True
    )
    bidder_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )
    bidder_name: Mapped[str] = mapped_column(String(200), nullable=False)

    amount: Mapped[float] = mapped_column(Float, nullable=False)
    quantity: Mapped[float] = mapped_column(Float, nullable=False)
    message: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=BidStatus.PENDING.value
    )
    is_highest_bid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    previous_bid_amount: Mapped[float | None] = mapped_column(Float, nullable=True)

    idempotency_key: Mapped[str | None] = mapped_column(String(128), nullable=True)

    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    auction: Mapped["Auction"] = relationship("Auction", back_populates="bids")

    __table_args__ = (
        UniqueConstraint(
            "bidder_id",
            "auction_id",
            "idempotency_key",
            name="uq_bids_bidder_auction_idempotency_key",
        ),
        Index("ix_bids_auction_status_amount", "auction_id", "status", "amount"),
        # At most one highest pending bid per auction
        Index(
            "uq_bids_auction_highest_pending",
            "auction_id",
            unique=True,
            postgresql_where=text("is_highest_bid AND status = 'pending'"),
        ).ddl_if(dialect="postgresql"),
    )

    def __repr__(self) -> str:
        return f"<Bid(id={self.id}, amount={self.amount}, status={self.status})>"
