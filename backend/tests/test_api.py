from datetime import timedelta
from uuid import uuid4

from conftest import auth_headers, create_product, seed_bid
from farmbid.core.database import utcnow
from farmbid.core.jwt import create_access_token


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


async def test_idle_pool_reports_healthy(client):
    response = await client.get("/metrics/pool")
    assert response.status_code == 200
    body = response.json()
    assert body["checked_out_connections"] == 0
    assert body["status"] == "healthy"


async def test_requests_without_token_are_unauthorized(client):
    response = await client.get("/api/auctions")
    assert response.status_code == 401


async def test_invalid_token_is_unauthorized(client):
    response = await client.get("/api/auctions", headers={"Authorization": "Bearer nonsense"})
    assert response.status_code == 401


async def test_token_for_unknown_user_is_unauthorized(client):
    token = create_access_token(uuid4(), "ghost", "trader")
    response = await client.get("/api/auctions", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


async def test_user_is_cached_after_first_request(client, redis, trader):
    response = await client.get("/api/bids/mine", headers=auth_headers(trader))
    assert response.status_code == 200

    cached = await redis.hgetall(f"user:{trader.id}")
    assert cached["role"] == "trader"
    assert cached["username"] == trader.username

    # served from the cache
    response = await client.get("/api/bids/mine", headers=auth_headers(trader))
    assert response.status_code == 200


async def test_product_and_auction_lifecycle(client, farmer):
    headers = auth_headers(farmer)

    response = await client.post(
        "/api/products",
        headers=headers,
        json={"name": "Turmeric", "category": "spices", "quantity": 40, "price": 150},
    )
    assert response.status_code == 201
    product = response.json()
    assert product["status"] == "available"

    response = await client.post(
        "/api/auctions",
        headers=headers,
        json={
            "product_id": product["id"],
            "start_price": 5000,
            "min_increment": 100,
            "end_time": (utcnow() + timedelta(hours=1)).isoformat(),
        },
    )
    assert response.status_code == 201
    auction = response.json()
    assert auction["current_price"] == 5000
    assert auction["status"] == "active"

    response = await client.get("/api/auctions", headers=headers)
    assert [a["id"] for a in response.json()] == [auction["id"]]

    response = await client.get("/api/auctions/mine", headers=headers)
    assert [a["id"] for a in response.json()] == [auction["id"]]

    response = await client.get("/api/products/mine", headers=headers)
    assert response.json()[0]["status"] == "in_auction"

    response = await client.post(f"/api/auctions/{auction['id']}/cancel", headers=headers)
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"


async def test_traders_cannot_create_products(client, trader):
    response = await client.post(
        "/api/products",
        headers=auth_headers(trader),
        json={"name": "Turmeric", "category": "spices", "quantity": 40, "price": 150},
    )
    assert response.status_code == 403


async def test_auction_validation_error_maps_to_422(client, db, farmer):
    product = await create_product(db, farmer, quantity=10)
    response = await client.post(
        "/api/auctions",
        headers=auth_headers(farmer),
        json={
            "product_id": str(product.id),
            "start_price": 100,
            "quantity": 50,
            "end_time": (utcnow() + timedelta(hours=1)).isoformat(),
        },
    )
    assert response.status_code == 422
    assert response.json()["type"] == "InvalidAuctionError"


async def test_bid_accept_flow(client, auction, farmer, trader, other_trader):
    auction_id = str(auction.id)

    response = await client.post(
        f"/api/auctions/{auction_id}/bids", headers=auth_headers(trader), json={"amount": 1100}
    )
    assert response.status_code == 201
    first = response.json()
    assert first["is_highest_bid"] is True

    response = await client.post(
        f"/api/auctions/{auction_id}/bids",
        headers=auth_headers(other_trader),
        json={"amount": 1200, "quantity": 50},
    )
    assert response.status_code == 201
    second = response.json()
    assert second["previous_bid_amount"] == 1100

    response = await client.get(f"/api/auctions/{auction_id}/bids", headers=auth_headers(farmer))
    bids = response.json()
    assert [b["amount"] for b in bids] == [1200, 1100]
    assert bids[1]["status"] == "outbid"

    response = await client.get(
        f"/api/auctions/{auction_id}/bids/highest", headers=auth_headers(trader)
    )
    assert response.json()["id"] == second["id"]

    response = await client.post(f"/api/bids/{second['id']}/accept", headers=auth_headers(farmer))
    assert response.status_code == 200
    order = response.json()
    assert order["total_amount"] == 1200 * 50
    assert order["trader_id"] == str(other_trader.id)

    # retrying the accept returns the same order
    response = await client.post(f"/api/bids/{second['id']}/accept", headers=auth_headers(farmer))
    assert response.json()["id"] == order["id"]

    response = await client.get(f"/api/auctions/{auction_id}", headers=auth_headers(trader))
    assert response.json()["status"] == "ended"
    assert response.json()["winning_bid_id"] == second["id"]

    response = await client.get("/api/orders", headers=auth_headers(other_trader))
    assert [o["id"] for o in response.json()] == [order["id"]]

    response = await client.get(f"/api/orders/{order['id']}", headers=auth_headers(farmer))
    assert response.status_code == 200

    response = await client.get(f"/api/orders/{order['id']}", headers=auth_headers(trader))
    assert response.status_code == 404

    response = await client.post(
        f"/api/auctions/{auction_id}/bids", headers=auth_headers(trader), json={"amount": 5000}
    )
    assert response.status_code == 409
    assert response.json()["type"] == "ConflictError"


async def test_low_bid_is_422(client, auction, trader):
    response = await client.post(
        f"/api/auctions/{auction.id}/bids", headers=auth_headers(trader), json={"amount": 1001}
    )
    assert response.status_code == 422
    assert response.json()["type"] == "InvalidBidError"


async def test_farmers_cannot_bid(client, auction, farmer):
    response = await client.post(
        f"/api/auctions/{auction.id}/bids", headers=auth_headers(farmer), json={"amount": 1100}
    )
    assert response.status_code == 403


async def test_idempotency_key_header(client, auction, trader):
    headers = {**auth_headers(trader), "Idempotency-Key": "order-form-7"}
    url = f"/api/auctions/{auction.id}/bids"

    first = await client.post(url, headers=headers, json={"amount": 1100})
    second = await client.post(url, headers=headers, json={"amount": 1100})

    assert first.status_code == 201
    assert second.json()["id"] == first.json()["id"]

    response = await client.get("/api/bids/mine", headers=auth_headers(trader))
    assert len(response.json()) == 1


async def test_reject_and_notifications(client, db, auction, farmer, trader, other_trader):
    top = await seed_bid(db, auction, trader, 900, is_highest=True)
    runner_up = await seed_bid(db, auction, other_trader, 850)

    response = await client.post(f"/api/bids/{top.id}/reject", headers=auth_headers(farmer))
    assert response.status_code == 200
    assert response.json()["status"] == "rejected"

    response = await client.get(
        f"/api/auctions/{auction.id}/bids/highest", headers=auth_headers(farmer)
    )
    assert response.json()["id"] == str(runner_up.id)

    response = await client.get("/api/notifications", headers=auth_headers(trader))
    notifications = response.json()
    assert [n["title"] for n in notifications] == ["Bid Rejected"]
    assert notifications[0]["read"] is False

    notification_id = notifications[0]["id"]
    response = await client.post(
        f"/api/notifications/{notification_id}/read", headers=auth_headers(trader)
    )
    assert response.json()["read"] is True

    response = await client.get(
        "/api/notifications", params={"unread_only": True}, headers=auth_headers(trader)
    )
    assert response.json() == []

    response = await client.post(
        f"/api/notifications/{notification_id}/read", headers=auth_headers(other_trader)
    )
    assert response.status_code == 404


async def test_unknown_auction_is_404(client, trader):
    response = await client.get(f"/api/auctions/{uuid4()}", headers=auth_headers(trader))
    assert response.status_code == 404
    assert response.json()["type"] == "NotFoundError"
