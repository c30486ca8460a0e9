"""
Store domain models - Immutable dataclasses for the platform purchase mechanism.

NO DICTIONARIES - All data uses strongly typed models.

These describe what the platform (App Store, Play Billing, a sandbox) hands
to SubscriptionKit: catalog products, transactions, and purchase outcomes.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum


class PeriodUnit(str, Enum):
    """Subscription period unit."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


@dataclass(frozen=True)
class SubscriptionPeriod:
    """Billing period of an auto-renewable product."""

    unit: PeriodUnit
    value: int

    def __post_init__(self) -> None:
        if self.value <= 0:
            raise ValueError(f"Subscription period must be positive: {self.value}")


@dataclass(frozen=True)
class StoreProduct:
    """Product as returned by the platform catalog."""

    product_id: str
    display_name: str
    display_price: str  # Localized, e.g. "$4.99"
    price: Decimal
    currency: str
    subscription_period: SubscriptionPeriod | None = None  # None for one-time products

    def __post_init__(self) -> None:
        if not self.product_id:
            raise ValueError("Product ID required")


@dataclass(frozen=True)
class StoreTransaction:
    """A platform transaction awaiting or having completed verification."""

    transaction_id: str
    product_id: str
    original_transaction_id: str | None = None
    purchase_date: datetime | None = None
    expires_date: datetime | None = None

    def __post_init__(self) -> None:
        if not self.transaction_id:
            raise ValueError("Transaction ID required")


@dataclass(frozen=True)
class VerificationResult:
    """
    Platform-side signature check of a transaction.

    Unverified transactions must never be sent to the backend or finished.
    """

    transaction: StoreTransaction
    verified: bool
    error: str | None = None

    @classmethod
    def verified_transaction(cls, transaction: StoreTransaction) -> "VerificationResult":
        return cls(transaction=transaction, verified=True)

    @classmethod
    def unverified_transaction(
        cls, transaction: StoreTransaction, error: str
    ) -> "VerificationResult":
        return cls(transaction=transaction, verified=False, error=error)


class PurchaseOutcome(str, Enum):
    """Outcome reported by the platform purchase sheet."""

    SUCCESS = "success"
    USER_CANCELLED = "user_cancelled"
    PENDING = "pending"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class PurchaseResult:
    """Result of a platform purchase attempt."""

    outcome: PurchaseOutcome
    verification: VerificationResult | None = None  # Set only on SUCCESS

    def __post_init__(self) -> None:
        if self.outcome == PurchaseOutcome.SUCCESS and self.verification is None:
            raise ValueError("Successful purchase requires a verification result")
