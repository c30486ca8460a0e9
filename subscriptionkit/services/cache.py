"""
Customer Info Cache - Best-effort persisted mirror of the last snapshot.

An entry is valid only while now < expiry. Expired, missing and undecodable
entries all read as a miss; nothing here ever raises to the caller.
"""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from pydantic import ValidationError
from structlog import get_logger

from subscriptionkit.models.customer import CustomerSnapshot
from subscriptionkit.services.storage import KeyValueStorage

logger = get_logger(__name__)

CACHE_KEY = "com.subscriptionkit.customerinfo"
CACHE_EXPIRY_KEY = "com.subscriptionkit.customerinfo.expiry"
DEFAULT_CACHE_TTL = timedelta(minutes=5)


def utc_now() -> datetime:
    return datetime.now(UTC)


class CustomerInfoCache:
    """Caches the customer snapshot in key-value storage with a time-to-live."""

    def __init__(
        self,
        storage: KeyValueStorage,
        ttl: timedelta = DEFAULT_CACHE_TTL,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.storage = storage
        self.ttl = ttl
        self._clock = clock

    def load(self) -> CustomerSnapshot | None:
        """Return the cached snapshot if present, decodable and not expired."""
        try:
            expires_at = self.storage.get_timestamp(CACHE_EXPIRY_KEY)
            if expires_at is None or self._clock() >= expires_at:
                return None

            data = self.storage.get_bytes(CACHE_KEY)
            if data is None:
                return None

            return CustomerSnapshot.from_json_bytes(data)
        except (ValidationError, ValueError) as exc:
            logger.warning("customer_info_cache_decode_failed", error=str(exc))
            return None

    def save(self, snapshot: CustomerSnapshot) -> None:
        """Store the snapshot with expiry now + ttl. Failures are logged, not raised."""
        try:
            data = snapshot.to_json_bytes()
            self.storage.set_bytes(CACHE_KEY, data)
            self.storage.set_timestamp(CACHE_EXPIRY_KEY, self._clock() + self.ttl)
        except (ValueError, TypeError, OSError) as exc:
            logger.warning(
                "customer_info_cache_save_failed",
                user_id=snapshot.user_id,
                error=str(exc),
            )

    def clear(self) -> None:
        """Remove both the snapshot and its expiry marker. Failures are logged, not raised."""
        try:
            self.storage.remove(CACHE_EXPIRY_KEY)
            self.storage.remove(CACHE_KEY)
        except OSError as exc:
            logger.warning("customer_info_cache_clear_failed", error=str(exc))
