"""
Identity Manager - Owns the current app user id.

There is exactly one current user id at a time: an anonymous one
(prefix + uuid4, persisted across restarts) or one supplied by the app.
Every replacement clears the customer info cache.
"""

from uuid import uuid4

from structlog import get_logger

from subscriptionkit.services.cache import CustomerInfoCache
from subscriptionkit.services.storage import KeyValueStorage

logger = get_logger(__name__)

ANONYMOUS_ID_KEY = "com.subscriptionkit.anonymousId"
DEFAULT_ANONYMOUS_PREFIX = "$anonymous_"


class IdentityManager:
    """
    Manages anonymous id persistence and identity switches.

    Usage:
        identity = IdentityManager(storage, cache)
        identity.identify(None)          # resume or mint the anonymous id
        identity.identify("user-123")    # app login
        identity.reset_to_anonymous()    # logout: always a fresh anonymous id
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        cache: CustomerInfoCache,
        prefix: str = DEFAULT_ANONYMOUS_PREFIX,
    ) -> None:
        self.storage = storage
        self.cache = cache
        self.prefix = prefix
        self._current_user_id: str | None = None

    @property
    def current_user_id(self) -> str | None:
        return self._current_user_id

    @property
    def is_anonymous(self) -> bool:
        return self._current_user_id is not None and self.is_anonymous_id(self._current_user_id)

    def is_anonymous_id(self, user_id: str) -> bool:
        return user_id.startswith(self.prefix)

    def mint_fresh_anonymous_id(self) -> str:
        """Mint a new anonymous id without reading or writing the persisted one."""
        return f"{self.prefix}{uuid4()}"

    def resolve_anonymous_id(self) -> str:
        """Return the persisted anonymous id, minting and persisting one if absent."""
        existing = self.storage.get_string(ANONYMOUS_ID_KEY)
        if existing:
            return existing

        new_id = self.mint_fresh_anonymous_id()
        self.storage.set_string(ANONYMOUS_ID_KEY, new_id)
        logger.info("anonymous_id_created", app_user_id=new_id)
        return new_id

    def identify(self, user_id: str | None) -> str:
        """
        Set the initial identity at configuration time. Does not touch the cache.
        """
        if user_id is not None and not user_id.strip():
            raise ValueError("app_user_id cannot be empty")
        self._current_user_id = user_id or self.resolve_anonymous_id()
        return self._current_user_id

    def switch_to(self, user_id: str) -> str:
        """Replace the current identity wholesale and clear the cache."""
        if not user_id or not user_id.strip():
            raise ValueError("app_user_id cannot be empty")

        previous = self._current_user_id
        self._current_user_id = user_id
        self.cache.clear()

        logger.info(
            "identity_switched",
            previous_user_id=previous,
            app_user_id=user_id,
            anonymous=self.is_anonymous_id(user_id),
        )
        return user_id

    def reset_to_anonymous(self) -> str:
        """Switch to a brand-new anonymous identity (never the persisted one)."""
        return self.switch_to(self.mint_fresh_anonymous_id())
