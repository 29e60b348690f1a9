"""Unit tests for password hashing, secret encryption and JWT handling."""

from datetime import datetime, timedelta, timezone

from jose import jwt

from radius_console.config import get_settings
from radius_console.core.security import (
    create_access_token,
    decode_access_token,
    decrypt_secret,
    encrypt_secret,
    generate_secure_token,
    get_roles_from_token,
    get_user_id_from_token,
    get_username_from_token,
    hash_password,
    is_token_expired,
    token_fingerprint,
    verify_password,
)
from radius_console.db.models import AppUser


def make_user() -> AppUser:
    return AppUser(
        id="5f0c6d2e-0000-4000-8000-000000000001",
        username="jdoe",
        email="jdoe@example.com",
        password_hash="x",
        first_name="Jane",
        is_active=True,
    )


class TestPasswordHashing:
    """Test bcrypt password hashing."""

    def test_hash_and_verify(self):
        """A hash verifies against its own password only."""
        hashed = hash_password("Passw0rd123")
        assert hashed != "Passw0rd123"
        assert verify_password("Passw0rd123", hashed) is True
        assert verify_password("wrong-password", hashed) is False

    def test_hashes_are_salted(self):
        assert hash_password("Passw0rd123") != hash_password("Passw0rd123")

    def test_malformed_hash_does_not_raise(self):
        assert verify_password("Passw0rd123", "not-a-bcrypt-hash") is False


class TestSecretEncryption:
    """Test Fernet encryption of stored secrets."""

    def test_round_trip(self):
        encrypted = encrypt_secret("JBSWY3DPEHPK3PXP")
        assert encrypted != "JBSWY3DPEHPK3PXP"
        assert decrypt_secret(encrypted) == "JBSWY3DPEHPK3PXP"

    def test_undecryptable_value_returns_none(self):
        assert decrypt_secret("definitely-not-a-fernet-token") is None


class TestAccessTokens:
    """Test JWT creation and verification."""

    def test_claims(self):
        """Token carries identity, roles, issuer and audience."""
        token, expires_at = create_access_token(make_user(), ["Admin", "Manager"])
        payload = decode_access_token(token)

        settings = get_settings()
        assert payload is not None
        assert payload["sub"] == "5f0c6d2e-0000-4000-8000-000000000001"
        assert payload["name"] == "jdoe"
        assert payload["email"] == "jdoe@example.com"
        assert payload["roles"] == ["Admin", "Manager"]
        assert payload["iss"] == settings.jwt_issuer
        assert payload["aud"] == settings.jwt_audience
        assert payload["jti"]
        assert int(expires_at.timestamp()) == payload["exp"]

    def test_default_lifetime(self):
        _, expires_at = create_access_token(make_user(), [])
        remaining = expires_at - datetime.now(timezone.utc)
        minutes = get_settings().access_token_expire_minutes
        assert timedelta(minutes=minutes - 1) < remaining <= timedelta(minutes=minutes)

    def test_unique_jti(self):
        first, _ = create_access_token(make_user(), [])
        second, _ = create_access_token(make_user(), [])
        assert decode_access_token(first)["jti"] != decode_access_token(second)["jti"]

    def test_expired_token_rejected(self):
        token, _ = create_access_token(make_user(), [], expires_delta=timedelta(seconds=-5))
        assert decode_access_token(token) is None
        assert is_token_expired(token) is True

    def test_tampered_token_rejected(self):
        token, _ = create_access_token(make_user(), ["User"])
        header, payload, signature = token.split(".")
        tampered = f"{header}.{payload}.{signature[::-1]}"
        assert decode_access_token(tampered) is None

    def test_wrong_audience_rejected(self):
        settings = get_settings()
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {
                "sub": "someone",
                "iss": settings.jwt_issuer,
                "aud": "SomeOtherService",
                "exp": int((now + timedelta(minutes=5)).timestamp()),
            },
            settings.jwt_secret_key,
            algorithm=settings.jwt_algorithm,
        )
        assert decode_access_token(token) is None

    def test_wrong_signing_key_rejected(self):
        settings = get_settings()
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {
                "sub": "someone",
                "iss": settings.jwt_issuer,
                "aud": settings.jwt_audience,
                "exp": int((now + timedelta(minutes=5)).timestamp()),
            },
            "another-key",
            algorithm=settings.jwt_algorithm,
        )
        assert decode_access_token(token) is None

    def test_unverified_claim_helpers(self):
        token, _ = create_access_token(make_user(), ["Manager"])
        assert get_user_id_from_token(token) == "5f0c6d2e-0000-4000-8000-000000000001"
        assert get_username_from_token(token) == "jdoe"
        assert get_roles_from_token(token) == ["Manager"]
        assert is_token_expired(token) is False

    def test_claim_helpers_on_garbage(self):
        assert get_user_id_from_token("garbage") is None
        assert get_roles_from_token("garbage") == []
        assert is_token_expired("garbage") is True


class TestRandomTokens:
    def test_secure_tokens_are_unique(self):
        tokens = {generate_secure_token() for _ in range(20)}
        assert len(tokens) == 20

    def test_fingerprint_is_stable(self):
        assert token_fingerprint("abc") == token_fingerprint("abc")
        assert token_fingerprint("abc") != token_fingerprint("abd")
