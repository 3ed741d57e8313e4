"""
Tests for credential storage.

The store must fail closed: anything short of a token with a future
expiry counts as invalid.
"""

from datetime import datetime, timedelta, timezone

from fitsync.features.fit.tokens import Credential, TokenStore


NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


class TestCredential:
    """Tests for Credential.is_valid."""

    def test_valid_before_expiry(self):
        credential = Credential("abc", NOW + timedelta(seconds=1))
        assert credential.is_valid(NOW)

    def test_invalid_at_expiry(self):
        credential = Credential("abc", NOW)
        assert not credential.is_valid(NOW)

    def test_missing_token(self):
        assert not Credential(None, NOW + timedelta(hours=1)).is_valid(NOW)
        assert not Credential("", NOW + timedelta(hours=1)).is_valid(NOW)

    def test_missing_expiry(self):
        assert not Credential("abc", None).is_valid(NOW)

    def test_repr_hides_token(self):
        credential = Credential("secret-token", NOW)
        assert "secret-token" not in repr(credential)


class TestTokenStore:
    """Tests for TokenStore."""

    def test_empty_store_is_invalid(self):
        store = TokenStore(clock=lambda: NOW)
        assert not store.is_valid()
        assert store.access_token is None
        assert store.get() is None

    def test_set_and_get(self):
        store = TokenStore(clock=lambda: NOW)
        credential = Credential("abc", NOW + timedelta(hours=1))
        store.set(credential)

        assert store.is_valid()
        assert store.get() is credential
        assert store.access_token == "abc"

    def test_expires_with_clock(self):
        current = [NOW]
        store = TokenStore(clock=lambda: current[0])
        store.set(Credential("abc", NOW + timedelta(minutes=5)))
        assert store.is_valid()

        current[0] = NOW + timedelta(minutes=5)
        assert not store.is_valid()
        # Expired credential is kept but never handed out
        assert store.get() is not None
        assert store.access_token is None

    def test_clear(self):
        store = TokenStore(clock=lambda: NOW)
        store.set(Credential("abc", NOW + timedelta(hours=1)))
        store.clear()

        assert not store.is_valid()
        assert store.get() is None
