"""Unit tests for the refresh token store and access token blacklist."""

from datetime import datetime, timedelta, timezone

from radius_console.core.tokens import TokenStore


class TestRefreshTokens:
    """Test refresh token issue, rotation and revocation."""

    def test_issue_and_lookup(self):
        store = TokenStore(refresh_lifetime=timedelta(days=1))
        token = store.issue_refresh_token("user-1")

        assert store.get_refresh_user_id(token) == "user-1"
        assert store.get_refresh_user_id("unknown") is None
        assert store.active_tokens_for_user("user-1") == 1

    def test_rotation_consumes_token(self):
        """A refresh token can be rotated exactly once."""
        store = TokenStore(refresh_lifetime=timedelta(days=1))
        token = store.issue_refresh_token("user-1")

        rotated = store.rotate_refresh_token(token)
        assert rotated is not None
        user_id, new_token = rotated
        assert user_id == "user-1"
        assert new_token != token

        assert store.rotate_refresh_token(token) is None
        assert store.get_refresh_user_id(new_token) == "user-1"

    def test_expired_token_is_rejected(self):
        store = TokenStore(refresh_lifetime=timedelta(seconds=-1))
        token = store.issue_refresh_token("user-1")

        assert store.get_refresh_user_id(token) is None
        assert store.rotate_refresh_token(store.issue_refresh_token("user-1")) is None

    def test_revoke(self):
        store = TokenStore(refresh_lifetime=timedelta(days=1))
        token = store.issue_refresh_token("user-1")

        assert store.revoke_refresh_token(token) is True
        assert store.revoke_refresh_token(token) is False
        assert store.get_refresh_user_id(token) is None

    def test_revoke_all_user_tokens(self):
        store = TokenStore(refresh_lifetime=timedelta(days=1))
        store.issue_refresh_token("user-1")
        store.issue_refresh_token("user-1")
        other = store.issue_refresh_token("user-2")

        assert store.revoke_all_user_tokens("user-1") == 2
        assert store.active_tokens_for_user("user-1") == 0
        assert store.get_refresh_user_id(other) == "user-2"


class TestBlacklist:
    """Test access token revocation by jti."""

    def test_blacklist(self):
        store = TokenStore(refresh_lifetime=timedelta(days=1))
        store.blacklist("jti-1", datetime.now(timezone.utc) + timedelta(minutes=5))

        assert store.is_blacklisted("jti-1") is True
        assert store.is_blacklisted("jti-2") is False
        assert store.is_blacklisted(None) is False

    def test_empty_jti_is_ignored(self):
        store = TokenStore(refresh_lifetime=timedelta(days=1))
        store.blacklist("")
        assert store.is_blacklisted("") is False

    def test_cleanup_expired(self):
        store = TokenStore(refresh_lifetime=timedelta(days=1))
        past = datetime.now(timezone.utc) - timedelta(minutes=1)
        store.blacklist("old", past)
        store.blacklist("current", datetime.now(timezone.utc) + timedelta(minutes=5))
        live = store.issue_refresh_token("user-1")

        assert store.cleanup_expired() == 1
        assert store.is_blacklisted("old") is False
        assert store.is_blacklisted("current") is True
        assert store.get_refresh_user_id(live) == "user-1"

    def test_clear(self):
        store = TokenStore(refresh_lifetime=timedelta(days=1))
        token = store.issue_refresh_token("user-1")
        store.blacklist("jti-1")

        store.clear()
        assert store.get_refresh_user_id(token) is None
        assert store.is_blacklisted("jti-1") is False
