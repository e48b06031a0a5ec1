from datetime import timedelta
from uuid import uuid4

import pytest
from fakeredis import FakeAsyncRedis
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# FORCE model registration
import farmbid.models  # noqa

from farmbid.core.database import Base, get_async_db, utcnow
from farmbid.core.jwt import create_access_token
from farmbid.core.redis import get_redis
from farmbid.models import (
    Auction,
    AuctionStatus,
    Bid,
    BidStatus,
    Product,
    ProductStatus,
    User,
    UserRole,
)


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def redis():
    client = FakeAsyncRedis(decode_responses=True)
    try:
        yield client
    finally:
        await client.flushall()
        await client.aclose()


@pytest.fixture
async def client(db, redis):
    from farmbid.main import app

    async def override_db():
        yield db

    async def override_redis():
        return redis

    app.dependency_overrides[get_async_db] = override_db
    app.dependency_overrides[get_redis] = override_redis
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://test"
        ) as http:
            yield http
    finally:
        app.dependency_overrides.clear()


def auth_headers(user: User) -> dict[str, str]:
    token = create_access_token(user.id, user.username, user.role)
    return {"Authorization": f"Bearer {token}"}


async def create_user(db, role: UserRole, name: str | None = None) -> User:
    username = name or f"{role.value}_{uuid4().hex[:8]}"
    user = User(
        username=username,
        email=f"{username}@example.com",
        full_name=username.replace("_", " ").title(),
        role=role.value,
    )
    db.add(user)
    await db.commit()
    return user


async def create_product(db, farmer: User, status=ProductStatus.AVAILABLE, quantity=100.0) -> Product:
    product = Product(
        farmer_id=farmer.id,
        name="Red Onions",
        category="vegetables",
        quantity=quantity,
        unit="kg",
        price=12.5,
        status=status.value,
    )
    db.add(product)
    await db.commit()
    return product


async def create_auction(
    db,
    farmer: User,
    start_price=1000.0,
    min_increment=50.0,
    quantity=100.0,
    reserve_price=None,
    start_time=None,
    end_time=None,
) -> Auction:
    """An active auction on a fresh in-auction product, open for an hour by default."""
    now = utcnow()
    product = await create_product(
        db, farmer, status=ProductStatus.IN_AUCTION, quantity=quantity
    )
    auction = Auction(
        product_id=product.id,
        farmer_id=farmer.id,
        start_price=start_price,
        current_price=start_price,
        reserve_price=reserve_price,
        min_increment=min_increment,
        quantity=quantity,
        start_time=start_time or now - timedelta(minutes=5),
        end_time=end_time or now + timedelta(hours=1),
        status=AuctionStatus.ACTIVE.value,
    )
    db.add(auction)
    await db.commit()
    return auction


async def seed_bid(
    db,
    auction: Auction,
    bidder: User,
    amount: float,
    status=BidStatus.PENDING,
    is_highest=False,
    created_at=None,
) -> Bid:
    """Insert a bid row directly, bypassing submission rules."""
    bid = Bid(
        auction_id=auction.id,
        product_id=auction.product_id,
        bidder_id=bidder.id,
        bidder_name=bidder.display_name,
        amount=amount,
        quantity=auction.quantity,
        status=status.value,
        is_highest_bid=is_highest,
        expires_at=auction.end_time,
        created_at=created_at or utcnow(),
    )
    db.add(bid)
    await db.commit()
    return bid


@pytest.fixture
async def farmer(db):
    return await create_user(db, UserRole.FARMER, "farmer_asha")


@pytest.fixture
async def trader(db):
    return await create_user(db, UserRole.TRADER, "trader_ravi")


@pytest.fixture
async def other_trader(db):
    return await create_user(db, UserRole.TRADER, "trader_meena")


@pytest.fixture
async def auction(db, farmer):
    return await create_auction(db, farmer)
