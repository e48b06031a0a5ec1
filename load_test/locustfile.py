"""
Bidding-Only Load Test - Zero Authentication During Test

This version:
1. Reads pre-minted trader tokens from load_test_fixture.json
2. Reuses tokens across all virtual users
3. 100% of write requests are bids on one auction

Every bid must beat the current price, so most concurrent bids lose the
race and come back 409/422. Those count as expected outcomes; only
server errors and timeouts are failures.
"""

import csv
import json
import math
import os
import random
import time
import uuid
from datetime import datetime

from locust import HttpUser, between, events, task

FIXTURE_FILE = os.getenv("LOAD_TEST_FIXTURE", "load_test_fixture.json")

# Will be populated before test starts
AUTH_TOKENS = []
AUCTION_ID = None
MIN_INCREMENT = 1.0
AUCTION_END_TIME = None  # Auction end timestamp
TEST_START_TIME = None  # Test start timestamp
BID_LOG_FILE = None  # CSV file for detailed bid logging

# Bid outcomes that reflect correct server behaviour under contention
EXPECTED_STATUSES = {201, 409, 422}


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    """
    Called ONCE before the test starts.
    Load tokens and auction info written by setup_test_auction.py.
    """
    global AUTH_TOKENS, AUCTION_ID, MIN_INCREMENT, AUCTION_END_TIME, TEST_START_TIME, BID_LOG_FILE

    TEST_START_TIME = time.time()

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_dir = f"results_{timestamp}"
    os.makedirs(log_dir, exist_ok=True)
    BID_LOG_FILE = os.path.join(log_dir, "bid_requests.csv")

    with open(BID_LOG_FILE, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(
            ["timestamp", "elapsed_seconds", "bid_amount", "status_code", "response_time_ms"]
        )

    print("\n" + "=" * 70)
    print("🔧 PRE-TEST SETUP")
    print("=" * 70)

    try:
        with open(FIXTURE_FILE) as f:
            fixture = json.load(f)
    except FileNotFoundError:
        print(f"❌ {FIXTURE_FILE} not found")
        print("   Run: python load_test/setup_test_auction.py")
        return

    AUCTION_ID = fixture["auction_id"]
    MIN_INCREMENT = fixture["min_increment"]
    AUTH_TOKENS = fixture["trader_tokens"]
    AUCTION_END_TIME = datetime.fromisoformat(fixture["end_time"]).timestamp()

    print(f"✅ Auction: {AUCTION_ID}")
    print(f"   Auth tokens ready: {len(AUTH_TOKENS)}")
    print(f"   Bid log file: {BID_LOG_FILE}")
    print("=" * 70 + "\n")


def _log_bid(elapsed_seconds: float, amount: float, status_code: int, started: float):
    if not BID_LOG_FILE:
        return
    with open(BID_LOG_FILE, "a", newline="") as f:
        csv.writer(f).writerow(
            [
                datetime.now().isoformat(),
                round(elapsed_seconds, 2),
                amount,
                status_code,
                round((time.time() - started) * 1000, 2),
            ]
        )


class AuctionBiddingUser(HttpUser):
    """
    Virtual trader that watches the price and outbids it.

    Bid frequency grows exponentially as the auction deadline approaches.
    """

    wait_time = between(0.1, 0.3)

    def on_start(self):
        """Pick a random pre-minted token - NO NETWORK REQUESTS HERE"""
        self.token = random.choice(AUTH_TOKENS) if AUTH_TOKENS else None
        self.last_price = None

    def wait(self):
        """
        Override wait time with exponential decay.
        This ensures bid rate (RPS) grows exponentially as deadline approaches.
        """
        if AUCTION_END_TIME is None or TEST_START_TIME is None:
            super().wait()
            return

        current_time = time.time()
        if AUCTION_END_TIME - current_time <= 0:
            time.sleep(0.05)
            return

        elapsed_time = current_time - TEST_START_TIME
        total_duration = AUCTION_END_TIME - TEST_START_TIME

        max_wait = 3.0
        min_wait = 0.2
        k = math.log(max_wait / min_wait) / total_duration

        wait_seconds = max(min_wait, max_wait * math.exp(-k * elapsed_time))
        time.sleep(wait_seconds * random.uniform(0.8, 1.2))

    @task(19)
    def submit_bid(self):
        """Outbid the last price this user saw"""
        if not self.token or not AUCTION_ID:
            return
        if self.last_price is None:
            self.refresh_price()
            if self.last_price is None:
                return

        amount = round(self.last_price + MIN_INCREMENT * random.randint(1, 5), 2)
        elapsed_seconds = time.time() - TEST_START_TIME
        request_start = time.time()

        with self.client.post(
            f"/api/auctions/{AUCTION_ID}/bids",
            headers={
                "Authorization": f"Bearer {self.token}",
                "Idempotency-Key": uuid.uuid4().hex,
            },
            json={"amount": amount},
            name="🎯 BID",
            catch_response=True,
        ) as response:
            if response.status_code in EXPECTED_STATUSES:
                response.success()
            else:
                response.failure(f"Status code: {response.status_code}")

            if response.status_code == 201:
                self.last_price = amount
            else:
                self.last_price = None

            _log_bid(elapsed_seconds, amount, response.status_code, request_start)

    @task(1)
    def refresh_price(self):
        """Read the auction's current price"""
        if not self.token or not AUCTION_ID:
            return
        response = self.client.get(
            f"/api/auctions/{AUCTION_ID}",
            headers={"Authorization": f"Bearer {self.token}"},
            name="📊 Auction",
        )
        if response.status_code == 200:
            self.last_price = response.json()["current_price"]
