"""
Setup script to create an active auction for load testing.

This script:
1. Creates a farmer and a pool of trader accounts directly in the database
2. Lists a test product and opens an auction on it
3. Mints bearer tokens and writes everything to load_test_fixture.json

Run it from the repository root with the same environment (POSTGRES_*,
REDIS_*, SECRET_KEY) as the API server.
"""

import argparse
import asyncio
import json
from datetime import timedelta

from sqlalchemy import select

from farmbid.core.database import AsyncSessionLocal, init_db, utcnow
from farmbid.core.jwt import create_access_token
from farmbid.models.user import User, UserRole
from farmbid.schemas.auction import AuctionCreate, ProductCreate
from farmbid.services import auction_service


async def get_or_create_user(db, username: str, role: UserRole) -> User:
    result = await db.execute(select(User).where(User.username == username))
    user = result.scalar_one_or_none()
    if user is None:
        user = User(
            username=username,
            email=f"{username}@loadtest.com",
            full_name=username.replace("_", " ").title(),
            role=role.value,
        )
        db.add(user)
        await db.commit()
    return user


async def create_test_auction(num_traders: int, duration_minutes: int, output: str):
    await init_db()

    async with AsyncSessionLocal() as db:
        print(f"1️⃣  Creating farmer and {num_traders} traders...")
        farmer = await get_or_create_user(db, "loadtest_farmer", UserRole.FARMER)
        traders = [
            await get_or_create_user(db, f"loadtest_trader_{i}", UserRole.TRADER)
            for i in range(1, num_traders + 1)
        ]

        print("2️⃣  Creating test product and auction...")
        product = await auction_service.create_product(
            db,
            farmer,
            ProductCreate(
                name="Load Test Lot - Durum Wheat",
                category="grains",
                description="Test product for stress testing the bidding path",
                quantity=1000,
                unit="kg",
                price=25.0,
            ),
        )
        auction = await auction_service.create_auction(
            db,
            farmer,
            AuctionCreate(
                product_id=product.id,
                start_price=100.0,
                min_increment=1.0,
                end_time=utcnow() + timedelta(minutes=duration_minutes),
                description="Load test auction",
            ),
        )

    fixture = {
        "auction_id": str(auction.id),
        "start_price": auction.start_price,
        "min_increment": auction.min_increment,
        "end_time": auction.end_time.isoformat(),
        "farmer_token": create_access_token(farmer.id, farmer.username, farmer.role),
        "trader_tokens": [
            create_access_token(trader.id, trader.username, trader.role)
            for trader in traders
        ],
    }
    with open(output, "w") as f:
        json.dump(fixture, f, indent=2)

    print(f"✅ Auction {auction.id} open until {auction.end_time.isoformat()}")
    print(f"   Fixture written to {output}")
    print("\n🚀 Ready for load test:")
    print("   locust -f load_test/locustfile.py --host http://localhost:8000")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create an auction for load testing")
    parser.add_argument("--traders", type=int, default=50)
    parser.add_argument("--duration", type=int, default=120, help="Auction length in minutes")
    parser.add_argument("--output", default="load_test_fixture.json")
    args = parser.parse_args()

    asyncio.run(create_test_auction(args.traders, args.duration, args.output))
