"""
SubscriptionKit - Client-side entitlement synchronization.

Combines platform purchase events with a backend that verifies purchases and
owns the customer's entitlements.
"""

__version__ = "0.1.0"

from subscriptionkit.config import ConfigurationError, Settings, get_settings  # noqa: E402
from subscriptionkit.exceptions import (  # noqa: E402
    NetworkError,
    NoActiveSubscriptionError,
    NotConfiguredError,
    ProductNotFoundError,
    PurchaseCancelledError,
    PurchasePendingError,
    ServerError,
    SubscriptionKitError,
    UnknownError,
    VerificationFailedError,
)
from subscriptionkit.models.customer import (  # noqa: E402
    CustomerSnapshot,
    Entitlement,
    Store,
    SubscriptionInfo,
    SubscriptionStatus,
)
from subscriptionkit.models.offerings import Offering, Offerings, Package, PackageType  # noqa: E402
from subscriptionkit.models.store import (  # noqa: E402
    PeriodUnit,
    PurchaseOutcome,
    PurchaseResult,
    StoreProduct,
    StoreTransaction,
    SubscriptionPeriod,
    VerificationResult,
)
from subscriptionkit.services.platform import StorePlatform  # noqa: E402
from subscriptionkit.services.storage import (  # noqa: E402
    InMemoryStorage,
    JsonFileStorage,
    KeyValueStorage,
)
from subscriptionkit.services.synchronizer import EntitlementSynchronizer, SyncState  # noqa: E402

__all__ = [
    "ConfigurationError",
    "CustomerSnapshot",
    "Entitlement",
    "EntitlementSynchronizer",
    "InMemoryStorage",
    "JsonFileStorage",
    "KeyValueStorage",
    "NetworkError",
    "NoActiveSubscriptionError",
    "NotConfiguredError",
    "Offering",
    "Offerings",
    "Package",
    "PackageType",
    "PeriodUnit",
    "ProductNotFoundError",
    "PurchaseCancelledError",
    "PurchaseOutcome",
    "PurchasePendingError",
    "PurchaseResult",
    "ServerError",
    "Settings",
    "Store",
    "StorePlatform",
    "StoreProduct",
    "StoreTransaction",
    "SubscriptionInfo",
    "SubscriptionKitError",
    "SubscriptionPeriod",
    "SubscriptionStatus",
    "SyncState",
    "UnknownError",
    "VerificationFailedError",
    "VerificationResult",
    "get_settings",
]
