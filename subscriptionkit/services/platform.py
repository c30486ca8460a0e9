"""
Store Platform Protocol - Interface to the platform purchase mechanism.

NO DICTIONARIES - All data uses strongly typed models.

Payment itself happens inside the platform; SubscriptionKit only sees
products, purchase outcomes and signed transactions.
"""

from collections.abc import AsyncIterator, Iterable
from typing import Protocol

from subscriptionkit.models.store import (
    PurchaseResult,
    StoreProduct,
    StoreTransaction,
    VerificationResult,
)


class StorePlatform(Protocol):
    """
    Platform purchase mechanism protocol.

    Any store integration (App Store, Play Billing, a local sandbox) must
    implement this interface.
    """

    async def get_products(self, product_ids: Iterable[str]) -> list[StoreProduct]:
        """
        Look products up in the platform catalog.

        Unknown identifiers are omitted from the result, not reported as errors.
        """
        ...

    async def purchase(self, product: StoreProduct) -> PurchaseResult:
        """
        Present the purchase flow for a product.

        Returns:
            Outcome of the purchase, with the signed transaction on success
        """
        ...

    def transaction_updates(self) -> AsyncIterator[VerificationResult]:
        """
        Continuous stream of transactions observed outside an explicit purchase
        (renewals, Ask to Buy approvals, purchases made on other devices).
        """
        ...

    async def sync(self) -> None:
        """Resynchronize the platform's purchase records (restore)."""
        ...

    def current_entitlements(self) -> AsyncIterator[VerificationResult]:
        """Enumerate transactions currently granting entitlements."""
        ...

    async def finish(self, transaction: StoreTransaction) -> None:
        """Acknowledge a transaction so the platform stops redelivering it."""
        ...
