import enum
from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import DateTime, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from farmbid.core.database import Base, utcnow

if TYPE_CHECKING:
    from farmbid.models.product import Product


class UserRole(str, enum.Enum):
    FARMER = "farmer"
    TRADER = "trader"


class User(Base):
    """User ORM model.

    Rows are owned by the identity provider; the marketplace only reads them.
    """

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    username: Mapped[str] = mapped_column(
        String(50), unique=True, nullable=False, index=True
    )
    email: Mapped[str] = mapped_column(
        String(100), unique=True, nullable=False, index=True
    )
    full_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    role: Mapped[str] = mapped_column(String(16), nullable=False, index=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    products: Mapped[list["Product"]] = relationship(
        "Product", back_populates="farmer"
    )

    @property
    def display_name(self) -> str:
        return self.full_name or self.username

    @property
    def is_farmer(self) -> bool:
        return self.role == UserRole.FARMER.value

    @property
    def is_trader(self) -> bool:
        return self.role == UserRole.TRADER.value

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username={self.username}, role={self.role})>"
