"""
Customer Models - Pydantic models for the customer entitlement snapshot.

NO DICTIONARIES - Wire payloads are decoded into strongly typed, frozen models.
Field names are snake_case; JSON keys are the backend's camelCase aliases.
"""

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict, Field

EXPIRING_SOON_WINDOW = timedelta(days=7)


def _assume_utc(value: datetime) -> datetime:
    # Naive timestamps from the backend are UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


UtcDatetime = Annotated[datetime, AfterValidator(_assume_utc)]


class Store(str, Enum):
    """Store where a purchase was made."""

    APP_STORE = "APP_STORE"
    PLAY_STORE = "PLAY_STORE"
    STRIPE = "STRIPE"
    PROMOTIONAL = "PROMOTIONAL"


class SubscriptionStatus(str, Enum):
    """Subscription status enumeration."""

    ACTIVE = "active"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    BILLING_RETRY = "billing_retry"
    GRACE_PERIOD = "grace_period"
    PAUSED = "paused"
    PENDING = "pending"

    @property
    def grants_access(self) -> bool:
        """Only active and grace-period subscriptions grant access."""
        return self in (SubscriptionStatus.ACTIVE, SubscriptionStatus.GRACE_PERIOD)


class WireModel(BaseModel):
    """Base for immutable camelCase wire models."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)


class Entitlement(WireModel):
    """An access grant (e.g. "premium") for a customer."""

    is_active: bool = Field(..., alias="isActive")
    product_id: str = Field(..., alias="productId")
    expires_at: UtcDatetime | None = Field(None, alias="expiresDate")  # None for lifetime
    will_renew: bool = Field(False, alias="willRenew")
    store: Store | None = None

    def is_expiring_within(self, window: timedelta, now: datetime | None = None) -> bool:
        """Check if the entitlement expires strictly between now and now + window."""
        if self.expires_at is None:
            return False
        now = now or datetime.now(UTC)
        return now < self.expires_at < now + window

    @property
    def is_expiring_soon(self) -> bool:
        """Check if entitlement is expiring soon (within 7 days)."""
        return self.is_expiring_within(EXPIRING_SOON_WINDOW)

    @property
    def time_remaining(self) -> timedelta | None:
        """Time remaining until expiration (negative once expired)."""
        if self.expires_at is None:
            return None
        return self.expires_at - datetime.now(UTC)


class SubscriptionInfo(WireModel):
    """Detailed information about a single subscription."""

    product_id: str = Field(..., alias="productId")
    status: SubscriptionStatus
    store: Store
    purchase_date: UtcDatetime | None = Field(None, alias="purchaseDate")
    expires_date: UtcDatetime | None = Field(None, alias="expiresDate")
    will_renew: bool = Field(False, alias="willRenew")
    price: Decimal | None = None  # Price paid for current period
    currency: str | None = None

    @property
    def grants_access(self) -> bool:
        return self.status.grants_access


class CustomerSnapshot(WireModel):
    """
    Immutable view of a customer's purchases and entitlements.

    Always replaced as a whole; never patched in place.
    """

    user_id: str = Field(..., alias="userId")
    original_user_id: str | None = Field(None, alias="originalAppUserId")
    entitlements: dict[str, Entitlement] = Field(default_factory=dict)
    active_subscription_ids: list[str] = Field(
        default_factory=list, alias="activeSubscriptions"
    )
    all_purchased_product_ids: list[str] = Field(
        default_factory=list, alias="allPurchasedProductIds"
    )
    latest_expiration: UtcDatetime | None = Field(None, alias="latestExpirationDate")
    management_url: str | None = Field(None, alias="managementURL")
    first_seen: UtcDatetime | None = Field(None, alias="firstSeen")
    last_seen: UtcDatetime | None = Field(None, alias="lastSeen")
    subscription_details: list[SubscriptionInfo] | None = Field(None, alias="subscriptions")

    @classmethod
    def empty(cls, user_id: str) -> "CustomerSnapshot":
        """Snapshot for a customer the backend does not know yet."""
        return cls(
            user_id=user_id,
            entitlements={},
            active_subscription_ids=[],
            all_purchased_product_ids=[],
        )

    def is_entitled(self, entitlement_id: str) -> bool:
        """Check if user has an active entitlement for the given identifier."""
        entitlement = self.entitlements.get(entitlement_id)
        return entitlement is not None and entitlement.is_active

    @property
    def has_active_subscription(self) -> bool:
        return len(self.active_subscription_ids) > 0

    @property
    def has_any_entitlement(self) -> bool:
        return any(e.is_active for e in self.entitlements.values())

    @property
    def active_entitlements(self) -> dict[str, Entitlement]:
        return {key: e for key, e in self.entitlements.items() if e.is_active}

    def to_json_bytes(self) -> bytes:
        """Serialize with the backend's camelCase keys."""
        return self.model_dump_json(by_alias=True).encode("utf-8")

    @classmethod
    def from_json_bytes(cls, data: bytes) -> "CustomerSnapshot":
        return cls.model_validate_json(data)
