"""
Pytest Configuration and Centralized Fixtures.

Provides reusable fakes and fixtures for testing:
- A fake store platform with scripted purchase outcomes and a live update stream
- A fake backend served through httpx.MockTransport
- Storage, a controllable clock and a ready-to-configure synchronizer
"""

import asyncio
import json
from collections.abc import AsyncIterator, Iterable
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any

import httpx
import pytest

from subscriptionkit.config import Settings
from subscriptionkit.models.store import (
    PeriodUnit,
    PurchaseOutcome,
    PurchaseResult,
    StoreProduct,
    StoreTransaction,
    SubscriptionPeriod,
    VerificationResult,
)
from subscriptionkit.services.storage import InMemoryStorage
from subscriptionkit.services.synchronizer import EntitlementSynchronizer

TEST_API_KEY = "sk_test_fake_key"
TEST_BASE_URL = "https://backend.test"

# ============================================================================
# Clock
# ============================================================================


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2025, 6, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def settings() -> Settings:
    return Settings(base_url=TEST_BASE_URL, log_format="console")


# ============================================================================
# Payload Builders
# ============================================================================


def snapshot_payload(
    user_id: str,
    active: Iterable[str] = (),
    inactive: Iterable[str] = (),
    **extra: Any,
) -> dict[str, Any]:
    """Build a customerInfo JSON payload as the backend sends it."""
    entitlements: dict[str, Any] = {}
    for name in active:
        entitlements[name] = {
            "isActive": True,
            "productId": f"com.app.{name}.monthly",
            "willRenew": True,
            "store": "APP_STORE",
        }
    for name in inactive:
        entitlements[name] = {
            "isActive": False,
            "productId": f"com.app.{name}.monthly",
            "willRenew": False,
            "store": "APP_STORE",
        }
    payload: dict[str, Any] = {
        "userId": user_id,
        "entitlements": entitlements,
        "activeSubscriptions": [e["productId"] for e in entitlements.values() if e["isActive"]],
        "allPurchasedProductIds": [e["productId"] for e in entitlements.values()],
    }
    payload.update(extra)
    return payload


# ============================================================================
# Fake Backend
# ============================================================================


class FakeBackend:
    """
    In-process stand-in for the entitlement backend.

    Unknown users answer 404. Verifying a transaction grants "premium"
    unless a status override is set for that transaction id.
    """

    def __init__(self) -> None:
        self.customers: dict[str, dict[str, Any]] = {}
        self.customer_status: int | None = None
        self.verify_status: dict[str, int] = {}
        self.requests: list[httpx.Request] = []

    @property
    def customer_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == "GET"]

    @property
    def verify_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == "POST"]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if request.method == "GET" and request.url.path.startswith("/api/v1/customers/"):
            user_id = request.url.path.removeprefix("/api/v1/customers/")
            if self.customer_status is not None:
                return httpx.Response(self.customer_status, json={"error": "boom"})
            if user_id not in self.customers:
                return httpx.Response(404, json={"error": "not found"})
            return httpx.Response(200, json={"customerInfo": self.customers[user_id]})

        if request.method == "POST" and request.url.path == "/api/v1/receipts/verify":
            body = json.loads(request.content)
            transaction_id = body["transactionId"]
            user_id = body["appUserId"]
            status = self.verify_status.get(transaction_id, 200)
            if status != 200:
                return httpx.Response(status, json={"error": "invalid receipt"})
            self.customers[user_id] = snapshot_payload(user_id, active=["premium"])
            return httpx.Response(
                200,
                json={
                    "success": True,
                    "customerInfo": self.customers[user_id],
                    "transaction": {
                        "transactionId": transaction_id,
                        "originalTransactionId": transaction_id,
                        "productId": "com.app.premium.monthly",
                        "environment": "Sandbox",
                    },
                },
            )

        return httpx.Response(405)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def http_client(backend: FakeBackend) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(backend.handler))


# ============================================================================
# Fake Store Platform
# ============================================================================


def make_transaction(
    transaction_id: str = "2000000001",
    product_id: str = "com.app.premium.monthly",
) -> StoreTransaction:
    return StoreTransaction(
        transaction_id=transaction_id,
        product_id=product_id,
        original_transaction_id=transaction_id,
        purchase_date=datetime(2025, 6, 1, tzinfo=UTC),
    )


MONTHLY = StoreProduct(
    product_id="com.app.premium.monthly",
    display_name="Premium Monthly",
    display_price="$4.99",
    price=Decimal("4.99"),
    currency="USD",
    subscription_period=SubscriptionPeriod(PeriodUnit.MONTH, 1),
)

ANNUAL = StoreProduct(
    product_id="com.app.premium.annual",
    display_name="Premium Annual",
    display_price="$47.99",
    price=Decimal("47.99"),
    currency="USD",
    subscription_period=SubscriptionPeriod(PeriodUnit.YEAR, 1),
)

LIFETIME = StoreProduct(
    product_id="com.app.premium.lifetime",
    display_name="Premium Lifetime",
    display_price="$99.99",
    price=Decimal("99.99"),
    currency="USD",
)


class FakeStorePlatform:
    """Scriptable implementation of the StorePlatform protocol."""

    def __init__(self, products: Iterable[StoreProduct] = (MONTHLY, ANNUAL, LIFETIME)) -> None:
        self.products = {p.product_id: p for p in products}
        self.next_purchase: PurchaseResult = PurchaseResult(
            outcome=PurchaseOutcome.SUCCESS,
            verification=VerificationResult.verified_transaction(make_transaction()),
        )
        self.entitlements: list[VerificationResult] = []
        self.updates: asyncio.Queue[VerificationResult | None] = asyncio.Queue()
        self.finished: list[StoreTransaction] = []
        self.purchased: list[StoreProduct] = []
        self.product_requests: list[list[str]] = []
        self.sync_calls = 0
        self.update_streams_opened = 0
        self.failing_streams = 0

    async def get_products(self, product_ids: Iterable[str]) -> list[StoreProduct]:
        ids = list(product_ids)
        self.product_requests.append(ids)
        return [self.products[i] for i in ids if i in self.products]

    async def purchase(self, product: StoreProduct) -> PurchaseResult:
        self.purchased.append(product)
        return self.next_purchase

    async def transaction_updates(self) -> AsyncIterator[VerificationResult]:
        self.update_streams_opened += 1
        if self.failing_streams > 0:
            self.failing_streams -= 1
            raise RuntimeError("update stream failed")
        while True:
            update = await self.updates.get()
            if update is None:
                return
            yield update

    async def sync(self) -> None:
        self.sync_calls += 1

    async def current_entitlements(self) -> AsyncIterator[VerificationResult]:
        for result in self.entitlements:
            yield result

    async def finish(self, transaction: StoreTransaction) -> None:
        self.finished.append(transaction)


@pytest.fixture
def platform() -> FakeStorePlatform:
    return FakeStorePlatform()


# ============================================================================
# Synchronizer
# ============================================================================


@pytest.fixture
def synchronizer(
    platform: FakeStorePlatform,
    storage: InMemoryStorage,
    settings: Settings,
    http_client: httpx.AsyncClient,
    clock: FrozenClock,
) -> EntitlementSynchronizer:
    """Unconfigured synchronizer wired to the fakes."""
    return EntitlementSynchronizer(
        platform=platform,
        storage=storage,
        settings=settings,
        http_client=http_client,
        clock=clock,
    )


async def wait_for(predicate: Any, timeout: float = 1.0) -> None:
    """Poll until predicate() is truthy."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)
