"""
Tests for IdentityManager.
"""

import pytest

from subscriptionkit.models.customer import CustomerSnapshot
from subscriptionkit.services.cache import CustomerInfoCache
from subscriptionkit.services.identity import ANONYMOUS_ID_KEY, IdentityManager


@pytest.fixture
def cache(storage, clock) -> CustomerInfoCache:
    return CustomerInfoCache(storage, clock=clock)


@pytest.fixture
def identity(storage, cache) -> IdentityManager:
    return IdentityManager(storage, cache)


class TestAnonymousIds:
    """Tests for minting and resolving anonymous ids."""

    def test_minted_id_is_tagged(self, identity):
        anonymous_id = identity.mint_fresh_anonymous_id()
        assert anonymous_id.startswith("$anonymous_")
        assert identity.is_anonymous_id(anonymous_id)

    def test_minted_ids_are_unique(self, identity):
        ids = {identity.mint_fresh_anonymous_id() for _ in range(100)}
        assert len(ids) == 100

    def test_resolve_persists_new_id(self, identity, storage):
        anonymous_id = identity.resolve_anonymous_id()
        assert storage.get_string(ANONYMOUS_ID_KEY) == anonymous_id

    def test_resolve_returns_persisted_id(self, storage, cache):
        first = IdentityManager(storage, cache).resolve_anonymous_id()
        second = IdentityManager(storage, cache).resolve_anonymous_id()
        assert first == second

    def test_mint_does_not_touch_persisted_id(self, identity, storage):
        persisted = identity.resolve_anonymous_id()
        identity.mint_fresh_anonymous_id()
        assert storage.get_string(ANONYMOUS_ID_KEY) == persisted

    def test_custom_prefix(self, storage, cache):
        identity = IdentityManager(storage, cache, prefix="anon:")
        assert identity.mint_fresh_anonymous_id().startswith("anon:")
        assert not identity.is_anonymous_id("$anonymous_x")


class TestIdentify:
    def test_identify_explicit_user(self, identity, storage):
        assert identity.identify("user-123") == "user-123"
        assert identity.current_user_id == "user-123"
        assert identity.is_anonymous is False
        assert storage.get_string(ANONYMOUS_ID_KEY) is None

    def test_identify_anonymous(self, identity):
        user_id = identity.identify(None)
        assert identity.is_anonymous is True
        assert user_id == identity.resolve_anonymous_id()

    def test_identify_rejects_blank(self, identity):
        with pytest.raises(ValueError):
            identity.identify("   ")

    def test_identify_keeps_cache(self, identity, cache):
        cache.save(CustomerSnapshot.empty("user-123"))
        identity.identify("user-123")
        assert cache.load() is not None


class TestSwitching:
    def test_switch_replaces_identity_and_clears_cache(self, identity, cache):
        identity.identify("user-1")
        cache.save(CustomerSnapshot.empty("user-1"))

        identity.switch_to("user-2")

        assert identity.current_user_id == "user-2"
        assert cache.load() is None

    def test_switch_rejects_empty(self, identity):
        with pytest.raises(ValueError):
            identity.switch_to("")

    def test_reset_mints_fresh_anonymous_id(self, identity, cache):
        previous = identity.identify(None)
        cache.save(CustomerSnapshot.empty(previous))

        new_id = identity.reset_to_anonymous()

        assert new_id != previous
        assert identity.is_anonymous is True
        assert identity.resolve_anonymous_id() == previous
        assert cache.load() is None
