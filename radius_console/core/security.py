"""Security utilities for password hashing and JWT token handling."""

import base64
import hashlib
import secrets
import uuid
from datetime import datetime, timedelta, timezone

import bcrypt
from cryptography.fernet import Fernet, InvalidToken
from jose import JWTError, jwt

from radius_console.config import get_settings

# Lazy-loaded cipher for secrets stored in the database
_cipher: Fernet | None = None


def _get_cipher() -> Fernet:
    """Get or create the Fernet cipher for encryption.

    Uses ``settings_encryption_key`` when set, otherwise derives a key from
    the JWT signing key so a single secret is enough for small deployments.
    """
    global _cipher
    if _cipher is None:
        settings = get_settings()
        key = settings.settings_encryption_key
        if not key:
            digest = hashlib.sha256(settings.jwt_secret_key.encode("utf-8")).digest()
            key = base64.urlsafe_b64encode(digest).decode("ascii")
        _cipher = Fernet(key)
    return _cipher


def encrypt_secret(secret: str) -> str:
    """Encrypt a secret (e.g. a TOTP seed) for storage.

    Args:
        secret: Plain text secret

    Returns:
        Encrypted secret string (base64)
    """
    return _get_cipher().encrypt(secret.encode()).decode()


def decrypt_secret(encrypted: str) -> str | None:
    """Decrypt a stored secret.

    Args:
        encrypted: Encrypted secret string

    Returns:
        Decrypted secret, or None if it cannot be decrypted with the current key
    """
    try:
        return _get_cipher().decrypt(encrypted.encode()).decode()
    except InvalidToken:
        return None


def hash_password(password: str) -> str:
    """Hash a password using bcrypt directly.

    Args:
        password: Plain text password

    Returns:
        Hashed password string
    """
    # bcrypt has a 72-byte limit, truncate if needed
    password_bytes = password.encode('utf-8')[:72]
    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(password_bytes, salt)
    return hashed.decode('utf-8')


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash.

    Args:
        plain_password: Plain text password to verify
        hashed_password: Hashed password to compare against

    Returns:
        True if password matches, False otherwise
    """
    password_bytes = plain_password.encode('utf-8')[:72]
    hashed_bytes = hashed_password.encode('utf-8')
    try:
        return bcrypt.checkpw(password_bytes, hashed_bytes)
    except (ValueError, TypeError):
        return False


def create_access_token(
    user,
    roles: list[str],
    expires_delta: timedelta | None = None,
) -> tuple[str, datetime]:
    """Create a signed JWT access token for a console user.

    Args:
        user: ``AppUser`` the token is issued to
        roles: Role names to embed in the ``roles`` claim
        expires_delta: Optional lifetime override

    Returns:
        Tuple of (encoded token, expiry as aware UTC datetime)
    """
    settings = get_settings()

    now = datetime.now(timezone.utc)
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.access_token_expire_minutes)
    expire = now + expires_delta

    claims = {
        "sub": user.id,
        "name": user.username,
        "email": user.email,
        "first_name": user.first_name or "",
        "last_name": user.last_name or "",
        "is_active": bool(user.is_active),
        "roles": list(roles),
        "jti": str(uuid.uuid4()),
        "iat": int(now.timestamp()),
        "exp": int(expire.timestamp()),
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
    }

    token = jwt.encode(
        claims,
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )
    return token, datetime.fromtimestamp(claims["exp"], tz=timezone.utc)


def decode_access_token(token: str) -> dict | None:
    """Verify and decode a JWT access token.

    Signature, expiry, issuer and audience are all checked; no clock
    leeway is applied.

    Args:
        token: JWT token string

    Returns:
        Decoded token payload or None if invalid
    """
    settings = get_settings()

    try:
        return jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options={"leeway": 0},
        )
    except JWTError:
        return None


def get_claims_from_token(token: str) -> dict:
    """Read claims without verifying the signature.

    Only for display and bookkeeping (e.g. finding the ``jti`` of a token that
    is being revoked). Never use the result for authorization.
    """
    try:
        return jwt.get_unverified_claims(token)
    except JWTError:
        return {}


def get_token_expiration(token: str) -> datetime | None:
    """Expiry of a token as aware UTC datetime, or None if unreadable."""
    exp = get_claims_from_token(token).get("exp")
    if exp is None:
        return None
    return datetime.fromtimestamp(int(exp), tz=timezone.utc)


def is_token_expired(token: str) -> bool:
    """True if the token has no readable expiry or it has passed."""
    expiration = get_token_expiration(token)
    return expiration is None or expiration <= datetime.now(timezone.utc)


def get_user_id_from_token(token: str) -> str | None:
    return get_claims_from_token(token).get("sub")


def get_username_from_token(token: str) -> str | None:
    return get_claims_from_token(token).get("name")


def get_roles_from_token(token: str) -> list[str]:
    roles = get_claims_from_token(token).get("roles") or []
    if isinstance(roles, str):
        return [roles]
    return list(roles)


def generate_secure_token(length: int = 64) -> str:
    """Generate a URL-safe random token from ``length`` random bytes.

    Args:
        length: Number of random bytes (default 64)

    Returns:
        URL-safe base64 string
    """
    return secrets.token_urlsafe(length)


def token_fingerprint(token: str) -> str:
    """Stable, non-reversible identifier for a token (base64 SHA-256)."""
    digest = hashlib.sha256(token.encode("utf-8")).digest()
    return base64.b64encode(digest).decode("ascii")
