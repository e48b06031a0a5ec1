from datetime import timedelta
from uuid import uuid4

import pytest

from conftest import create_auction, create_product, create_user, seed_bid
from farmbid.core.config import settings
from farmbid.core.database import utcnow
from farmbid.core.exceptions import (
    ConflictError,
    InvalidAuctionError,
    NotFoundError,
    PermissionDeniedError,
)
from farmbid.models import AuctionStatus, Product, ProductStatus, UserRole
from farmbid.schemas.auction import AuctionCreate, ProductCreate
from farmbid.services import auction_service


def auction_data(product_id, **overrides):
    fields = {
        "product_id": product_id,
        "start_price": 1000.0,
        "min_increment": 50.0,
        "end_time": utcnow() + timedelta(hours=2),
    }
    fields.update(overrides)
    return AuctionCreate(**fields)


async def test_create_product(db, farmer):
    product = await auction_service.create_product(
        db,
        farmer,
        ProductCreate(name="Alphonso Mangoes", category="fruit", quantity=200, price=80),
    )

    assert product.status == ProductStatus.AVAILABLE.value
    assert product.unit == "kg"
    assert product.farmer_id == farmer.id
    assert [p.id for p in await auction_service.list_farmer_products(db, farmer.id)] == [product.id]


async def test_create_auction(db, farmer):
    product = await create_product(db, farmer, quantity=100)

    auction = await auction_service.create_auction(db, farmer, auction_data(product.id, quantity=60))

    await db.refresh(product)
    assert auction.status == AuctionStatus.ACTIVE.value
    assert auction.current_price == 1000.0
    assert auction.quantity == 60
    assert auction.version == 1
    assert product.status == ProductStatus.IN_AUCTION.value


async def test_create_auction_defaults(db, farmer):
    product = await create_product(db, farmer, quantity=75)
    auction = await auction_service.create_auction(
        db, farmer, auction_data(product.id, min_increment=None)
    )

    assert auction.min_increment == settings.DEFAULT_MIN_INCREMENT
    assert auction.quantity == 75


async def test_create_auction_for_missing_product(db, farmer):
    with pytest.raises(NotFoundError):
        await auction_service.create_auction(db, farmer, auction_data(uuid4()))


async def test_create_auction_on_someone_elses_product(db, farmer):
    other = await create_user(db, UserRole.FARMER)
    product = await create_product(db, other)

    with pytest.raises(PermissionDeniedError):
        await auction_service.create_auction(db, farmer, auction_data(product.id))


async def test_create_auction_requires_available_product(db, farmer):
    product = await create_product(db, farmer, status=ProductStatus.SOLD)

    with pytest.raises(ConflictError):
        await auction_service.create_auction(db, farmer, auction_data(product.id))


@pytest.mark.parametrize(
    "overrides",
    [
        {"quantity": 500},
        {"end_time": utcnow() - timedelta(minutes=1)},
        {"start_time": utcnow() + timedelta(hours=3), "end_time": utcnow() + timedelta(hours=2)},
        {"reserve_price": 900.0},
    ],
)
async def test_create_auction_rejects_inconsistent_parameters(db, farmer, overrides):
    product = await create_product(db, farmer, quantity=100)
    product_id = product.id

    with pytest.raises(InvalidAuctionError):
        await auction_service.create_auction(db, farmer, auction_data(product_id, **overrides))

    product = await db.get(Product, product_id, populate_existing=True)
    assert product.status == ProductStatus.AVAILABLE.value


async def test_listing_auctions(db, farmer):
    other = await create_user(db, UserRole.FARMER)
    soon = await create_auction(db, farmer, end_time=utcnow() + timedelta(minutes=10))
    later = await create_auction(db, other, end_time=utcnow() + timedelta(hours=5))
    closed = await create_auction(db, farmer)
    closed.status = AuctionStatus.ENDED.value
    await db.commit()

    active = await auction_service.list_active_auctions(db)
    assert [a.id for a in active] == [soon.id, later.id]

    mine = await auction_service.list_farmer_auctions(db, farmer.id)
    assert {a.id for a in mine} == {soon.id, closed.id}

    assert (await auction_service.get_auction(db, later.id)).id == later.id
    with pytest.raises(NotFoundError):
        await auction_service.get_auction(db, uuid4())


async def test_cancel_auction_releases_product(db, farmer, auction):
    cancelled = await auction_service.cancel_auction(db, farmer.id, auction.id)

    product = await db.get(Product, auction.product_id)
    assert cancelled.status == AuctionStatus.CANCELLED.value
    assert cancelled.closed_at is not None
    assert product.status == ProductStatus.AVAILABLE.value

    again = await auction_service.cancel_auction(db, farmer.id, auction.id)
    assert again.status == AuctionStatus.CANCELLED.value


async def test_cannot_cancel_with_pending_bids(db, farmer, trader, auction):
    await seed_bid(db, auction, trader, 1100, is_highest=True)
    auction_id = auction.id

    with pytest.raises(ConflictError):
        await auction_service.cancel_auction(db, farmer.id, auction_id)


async def test_cannot_cancel_ended_auction(db, farmer, auction):
    auction.status = AuctionStatus.ENDED.value
    await db.commit()

    with pytest.raises(ConflictError):
        await auction_service.cancel_auction(db, farmer.id, auction.id)


async def test_only_owner_can_cancel(db, auction):
    other = await create_user(db, UserRole.FARMER)

    with pytest.raises(PermissionDeniedError):
        await auction_service.cancel_auction(db, other.id, auction.id)
