"""
Entitlement Synchronizer - Reconciles platform purchases with the backend.

The synchronizer is the only writer of the in-memory customer snapshot.
Every successful fetch or verification replaces it wholesale and mirrors it to
the cache; the most recently completed result wins.

Usage:
    sync = EntitlementSynchronizer(platform=my_store, storage=JsonFileStorage(path))
    sync.configure(api_key="sk_...")
    info = await sync.refresh()
    if info.is_entitled("premium"):
        ...
    await sync.aclose()
"""

import asyncio
from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta

import httpx
import structlog

from subscriptionkit.config import Settings, get_settings
from subscriptionkit.exceptions import (
    NoActiveSubscriptionError,
    NotConfiguredError,
    ProductNotFoundError,
    PurchaseCancelledError,
    PurchasePendingError,
    SubscriptionKitError,
    UnknownError,
    VerificationFailedError,
)
from subscriptionkit.models.customer import CustomerSnapshot, Entitlement
from subscriptionkit.models.offerings import Offering, Offerings, Package
from subscriptionkit.models.store import PurchaseOutcome, StoreProduct, StoreTransaction
from subscriptionkit.observability.logging import get_logger, log_context
from subscriptionkit.services.cache import CustomerInfoCache, utc_now
from subscriptionkit.services.identity import IdentityManager
from subscriptionkit.services.listener import TransactionListener
from subscriptionkit.services.platform import StorePlatform
from subscriptionkit.services.remote import RemoteSyncClient
from subscriptionkit.services.storage import KeyValueStorage, build_storage
from subscriptionkit.services.tasks import TaskRegistry


@dataclass(frozen=True)
class SyncState:
    """Published state, delivered to observers as one value per change."""

    customer_info: CustomerSnapshot | None
    is_loading: bool
    offerings: Offerings | None
    app_user_id: str | None


StateObserver = Callable[[SyncState], None]


class EntitlementSynchronizer:
    """
    Orchestrates configuration, purchase, restore, login/logout and refresh.

    Forced operations (log_in, log_out, purchase, restore_purchases,
    refresh(force_network=True)) are expected to be awaited one at a time.
    Must be used from a single asyncio event loop.
    """

    def __init__(
        self,
        platform: StorePlatform,
        storage: KeyValueStorage | None = None,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """
        Args:
            platform: Platform purchase mechanism
            storage: Persistent key-value storage (defaults from settings.storage_path)
            settings: Library settings (defaults from environment)
            http_client: Optional shared httpx client for the backend
            logger: Optional structlog logger; defaults to this module's logger
            clock: Time source for cache expiry
        """
        self.settings = settings or get_settings()
        self.platform = platform
        self.storage = storage if storage is not None else build_storage(self.settings.storage_path)
        self.cache = CustomerInfoCache(
            self.storage,
            ttl=timedelta(seconds=self.settings.cache_ttl_seconds),
            clock=clock,
        )
        self.identity = IdentityManager(
            self.storage, self.cache, prefix=self.settings.anonymous_id_prefix
        )
        self.tasks = TaskRegistry()
        self.logger = logger or get_logger(__name__)

        self._http_client = http_client
        self._remote: RemoteSyncClient | None = None
        self._listener: TransactionListener | None = None

        self._customer_info: CustomerSnapshot | None = None
        self._offerings: Offerings | None = None
        self._busy_operations = 0
        self._observers: list[StateObserver] = []

    # ------------------------------------------------------------------------
    # Published state
    # ------------------------------------------------------------------------

    @property
    def is_configured(self) -> bool:
        return self._remote is not None

    @property
    def customer_info(self) -> CustomerSnapshot | None:
        return self._customer_info

    @property
    def is_loading(self) -> bool:
        return self._busy_operations > 0

    @property
    def offerings(self) -> Offerings | None:
        return self._offerings

    @property
    def app_user_id(self) -> str | None:
        return self.identity.current_user_id

    @property
    def is_anonymous(self) -> bool:
        return self.identity.is_anonymous

    @property
    def state(self) -> SyncState:
        return SyncState(
            customer_info=self._customer_info,
            is_loading=self.is_loading,
            offerings=self._offerings,
            app_user_id=self.app_user_id,
        )

    def subscribe(self, observer: StateObserver) -> Callable[[], None]:
        """
        Register an observer for state changes.

        Returns:
            A callable that unregisters the observer
        """
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def _publish(self) -> None:
        state = self.state
        for observer in list(self._observers):
            try:
                observer(state)
            except Exception:
                self.logger.exception("state_observer_failed")

    def _set_customer_info(self, snapshot: CustomerSnapshot | None) -> None:
        self._customer_info = snapshot
        self._publish()

    @contextmanager
    def _busy(self) -> Iterator[None]:
        self._busy_operations += 1
        self._publish()
        try:
            yield
        finally:
            self._busy_operations -= 1
            self._publish()

    @contextmanager
    def _platform_errors(self, operation: str) -> Iterator[None]:
        """Map unexpected platform failures onto UnknownError."""
        try:
            yield
        except SubscriptionKitError:
            raise
        except Exception as exc:
            self.logger.exception("platform_operation_failed", operation=operation)
            raise UnknownError() from exc

    # ------------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------------

    def configure(
        self,
        api_key: str,
        app_user_id: str | None = None,
        base_url: str | None = None,
    ) -> None:
        """
        Configure the synchronizer. Must be called with a running event loop.

        A second call while configured is a no-op; the first configuration wins.

        Args:
            api_key: Backend API key, sent as a bearer token
            app_user_id: Optional user identifier; anonymous id when omitted
            base_url: Optional backend URL (defaults to settings.base_url)
        """
        if self.is_configured:
            self.logger.warning("subscriptionkit_already_configured", app_user_id=self.app_user_id)
            return

        if not api_key:
            raise ValueError("api_key is required")

        # Fail before touching state when there is no loop to schedule on
        asyncio.get_running_loop()

        user_id = self.identity.identify(app_user_id)
        self._remote = RemoteSyncClient(
            api_key=api_key,
            base_url=base_url or self.settings.normalized_base_url,
            timeout=self.settings.request_timeout_seconds,
            http_client=self._http_client,
        )

        self.logger.info(
            "subscriptionkit_configured",
            app_user_id=user_id,
            anonymous=self.identity.is_anonymous,
            base_url=self._remote.base_url,
        )

        self._listener = TransactionListener(self.platform, self._verify_transaction)
        self._listener.start(self.tasks)

        cached = self.cache.load()
        if cached is not None and cached.user_id == user_id:
            self.logger.info("customer_info_loaded_from_cache", app_user_id=user_id)
            self._set_customer_info(cached)

        self.tasks.spawn(self._background_refresh(), name="initial_refresh")

    def _require_remote(self) -> RemoteSyncClient:
        if self._remote is None:
            raise NotConfiguredError()
        return self._remote

    def _require_user_id(self) -> str:
        user_id = self.identity.current_user_id
        if user_id is None:
            raise NotConfiguredError()
        return user_id

    # ------------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------------

    async def log_in(self, app_user_id: str) -> CustomerSnapshot:
        """Switch to an app-supplied user id, clear the cache and fetch fresh."""
        self._require_remote()
        try:
            self.identity.switch_to(app_user_id)
        finally:
            self._drop_foreign_snapshot()
        return await self._fetch_fresh()

    async def log_out(self) -> CustomerSnapshot:
        """Switch to a brand-new anonymous id, clear the cache and fetch fresh."""
        self._require_remote()
        try:
            self.identity.reset_to_anonymous()
        finally:
            self._drop_foreign_snapshot()
        return await self._fetch_fresh()

    def _drop_foreign_snapshot(self) -> None:
        """Unpublish a snapshot that belongs to anyone but the current user."""
        current = self._customer_info
        if current is not None and current.user_id != self.identity.current_user_id:
            self._set_customer_info(None)

    # ------------------------------------------------------------------------
    # Purchases
    # ------------------------------------------------------------------------

    async def purchase(self, product: StoreProduct) -> CustomerSnapshot:
        """
        Purchase a product and verify it with the backend.

        The transaction is finished with the platform only after the backend
        verified it.

        Raises:
            VerificationFailedError: Platform or backend could not verify
            PurchaseCancelledError: User cancelled
            PurchasePendingError: Purchase awaits external approval
            UnknownError: Unrecognized platform outcome or platform failure
        """
        self._require_remote()

        with self._busy(), log_context(product_id=product.product_id):
            self.logger.info("purchase_started", app_user_id=self.app_user_id)

            with self._platform_errors("purchase"):
                result = await self.platform.purchase(product)

            if result.outcome == PurchaseOutcome.SUCCESS and result.verification is not None:
                verification = result.verification
                if not verification.verified:
                    self.logger.error(
                        "purchase_transaction_unverified",
                        transaction_id=verification.transaction.transaction_id,
                        error=verification.error,
                    )
                    raise VerificationFailedError(verification.error)

                snapshot = await self._verify_transaction(verification.transaction)
                await self._finish(verification.transaction)

                self.logger.info(
                    "purchase_succeeded",
                    transaction_id=verification.transaction.transaction_id,
                )
                return snapshot

            if result.outcome == PurchaseOutcome.USER_CANCELLED:
                self.logger.info("purchase_cancelled")
                raise PurchaseCancelledError()

            if result.outcome == PurchaseOutcome.PENDING:
                self.logger.info("purchase_pending")
                raise PurchasePendingError()

            self.logger.error("purchase_outcome_unknown", outcome=result.outcome.value)
            raise UnknownError()

    async def purchase_product(self, product_id: str) -> CustomerSnapshot:
        """Look a product up by identifier and purchase it."""
        products = await self.get_products([product_id])
        for product in products:
            if product.product_id == product_id:
                return await self.purchase(product)
        self.logger.warning("purchase_product_not_found", product_id=product_id)
        raise ProductNotFoundError(product_id)

    async def restore_purchases(self) -> CustomerSnapshot:
        """
        Resync platform records, re-verify current entitlements, then fetch fresh.

        Individual verification failures are logged and skipped.
        """
        self._require_remote()

        with self._busy():
            self.logger.info("restore_started", app_user_id=self.app_user_id)

            with self._platform_errors("sync"):
                await self.platform.sync()

            restored = 0
            failed = 0
            with self._platform_errors("current_entitlements"):
                async for result in self.platform.current_entitlements():
                    transaction = result.transaction
                    if not result.verified:
                        failed += 1
                        self.logger.warning(
                            "restore_transaction_unverified",
                            transaction_id=transaction.transaction_id,
                            error=result.error,
                        )
                        continue
                    try:
                        await self._verify_transaction(transaction)
                        restored += 1
                    except SubscriptionKitError as exc:
                        failed += 1
                        self.logger.warning(
                            "restore_transaction_verification_failed",
                            transaction_id=transaction.transaction_id,
                            error=str(exc),
                        )

            snapshot = await self._fetch_fresh()

            self.logger.info("restore_complete", restored=restored, failed=failed)
            return snapshot

    async def _verify_transaction(self, transaction: StoreTransaction) -> CustomerSnapshot:
        """Verify with the backend and apply the returned snapshot."""
        remote = self._require_remote()
        user_id = self._require_user_id()

        response = await remote.verify_transaction(transaction.transaction_id, user_id)
        self._apply(response.customer_info, source="verification")
        return response.customer_info

    async def _finish(self, transaction: StoreTransaction) -> None:
        try:
            await self.platform.finish(transaction)
        except Exception:
            # Backend already granted access; the platform redelivers unfinished
            # transactions to the listener.
            self.logger.exception(
                "transaction_finish_failed",
                transaction_id=transaction.transaction_id,
            )

    # ------------------------------------------------------------------------
    # Customer info
    # ------------------------------------------------------------------------

    async def refresh(self, force_network: bool = False) -> CustomerSnapshot:
        """
        Get customer info.

        With a loaded snapshot and no force, returns it immediately and
        refreshes in the background. Otherwise fetches from the backend.
        """
        self._require_remote()

        current = self._customer_info
        if current is not None and not force_network:
            self.tasks.spawn(self._background_refresh(), name="background_refresh")
            return current

        return await self._fetch_fresh()

    async def get_customer_info(self) -> CustomerSnapshot:
        """Current customer info, cached if available (refreshes in background)."""
        return await self.refresh()

    async def refresh_customer_info(self) -> CustomerSnapshot:
        """Fetch customer info from the backend, bypassing memory and cache."""
        return await self.refresh(force_network=True)

    def require_entitlement(self, entitlement_id: str) -> Entitlement:
        """
        Return the active entitlement from the current snapshot.

        Raises:
            NoActiveSubscriptionError: No snapshot, or the entitlement is not active
        """
        self._require_remote()
        info = self._customer_info
        if info is None or not info.is_entitled(entitlement_id):
            raise NoActiveSubscriptionError(entitlement_id)
        return info.entitlements[entitlement_id]

    async def _fetch_fresh(self) -> CustomerSnapshot:
        remote = self._require_remote()
        user_id = self._require_user_id()

        snapshot = await remote.fetch_snapshot(user_id)
        self._apply(snapshot, source="network")
        return snapshot

    async def _background_refresh(self) -> None:
        try:
            await self._fetch_fresh()
        except SubscriptionKitError as exc:
            self.logger.warning(
                "background_refresh_failed",
                app_user_id=self.app_user_id,
                error=str(exc),
            )

    def _apply(self, snapshot: CustomerSnapshot, source: str) -> None:
        self.cache.save(snapshot)
        self._set_customer_info(snapshot)
        self.logger.info(
            "customer_info_updated",
            source=source,
            app_user_id=snapshot.user_id,
            active_entitlements=len(snapshot.active_entitlements),
        )

    # ------------------------------------------------------------------------
    # Products & offerings
    # ------------------------------------------------------------------------

    async def get_products(self, product_ids: Iterable[str]) -> list[StoreProduct]:
        """Fetch products from the platform catalog."""
        self._require_remote()
        ids = list(dict.fromkeys(product_ids))
        if not ids:
            return []
        with self._platform_errors("get_products"):
            return await self.platform.get_products(ids)

    async def load_offerings(self, product_ids: Mapping[str, Sequence[str]]) -> Offerings:
        """
        Load offerings, mapping offering identifier to its product identifiers.

        An offering with no ids (or no products found) has zero packages.
        """
        self._require_remote()

        all_offerings: dict[str, Offering] = {}
        for offering_id, ids in product_ids.items():
            order = {pid: index for index, pid in enumerate(ids)}
            products = sorted(
                await self.get_products(ids),
                key=lambda p: order.get(p.product_id, len(order)),
            )
            all_offerings[offering_id] = Offering(
                identifier=offering_id,
                packages=tuple(Package(product=p) for p in products),
            )

        offerings = Offerings(all=all_offerings)
        self._offerings = offerings
        self._publish()

        self.logger.info("offerings_loaded", count=len(offerings))
        return offerings

    # ------------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------------

    async def wait_idle(self) -> None:
        """Wait for background refreshes to finish (the listener is not awaited)."""
        exclude = set()
        if self._listener is not None and self._listener.task is not None:
            exclude.add(self._listener.task)
        await self.tasks.wait_idle(exclude=exclude)

    async def aclose(self) -> None:
        """Stop the listener, cancel background work and close the HTTP client."""
        if self._listener is not None:
            await self._listener.stop()
            self._listener = None
        await self.tasks.shutdown()
        if self._remote is not None:
            await self._remote.close()
            self._remote = None
        self.logger.info("subscriptionkit_closed")

    async def __aenter__(self) -> "EntitlementSynchronizer":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
