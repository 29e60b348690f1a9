"""In-process refresh token and access token blacklist store.

State lives in this process only. Running several API workers means each
has its own store, so a refresh token issued by one worker is unknown to the
others. Deploy a single worker or put a shared store behind this interface.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from radius_console.config import get_settings
from radius_console.core.security import generate_secure_token, token_fingerprint

logger = logging.getLogger(__name__)


@dataclass
class RefreshTokenEntry:
    """Refresh token bookkeeping."""

    user_id: str
    created_at: datetime
    expires_at: datetime

    @property
    def is_expired(self) -> bool:
        return self.expires_at <= datetime.now(timezone.utc)


class TokenStore:
    """Thread-safe store of refresh tokens and revoked access token IDs."""

    def __init__(self, refresh_lifetime: timedelta | None = None):
        """
        Initialize the token store.

        Args:
            refresh_lifetime: Refresh token lifetime; defaults to
                ``refresh_token_expire_days`` from settings
        """
        if refresh_lifetime is None:
            refresh_lifetime = timedelta(days=get_settings().refresh_token_expire_days)
        self.refresh_lifetime = refresh_lifetime
        self._lock = threading.Lock()
        self._refresh_tokens: dict[str, RefreshTokenEntry] = {}
        # jti -> expiry of the access token it belongs to
        self._blacklist: dict[str, datetime] = {}

    def issue_refresh_token(self, user_id: str) -> str:
        """Create and remember a new refresh token for ``user_id``."""
        token = generate_secure_token(64)
        now = datetime.now(timezone.utc)
        with self._lock:
            self._refresh_tokens[token] = RefreshTokenEntry(
                user_id=user_id,
                created_at=now,
                expires_at=now + self.refresh_lifetime,
            )
        logger.debug(f"Issued refresh token {token_fingerprint(token)[:12]} for user {user_id}")
        return token

    def get_refresh_user_id(self, token: str) -> str | None:
        """Owner of a refresh token, or None if unknown or expired."""
        with self._lock:
            entry = self._refresh_tokens.get(token)
            if entry is None:
                return None
            if entry.is_expired:
                del self._refresh_tokens[token]
                return None
            return entry.user_id

    def rotate_refresh_token(self, token: str) -> tuple[str, str] | None:
        """Consume ``token`` and issue a replacement.

        Returns:
            Tuple of (user_id, new refresh token) or None if ``token`` is not
            valid. A token can only be rotated once.
        """
        with self._lock:
            entry = self._refresh_tokens.pop(token, None)
        if entry is None or entry.is_expired:
            return None
        return entry.user_id, self.issue_refresh_token(entry.user_id)

    def revoke_refresh_token(self, token: str) -> bool:
        """Forget a refresh token. Returns False if it was not known."""
        with self._lock:
            return self._refresh_tokens.pop(token, None) is not None

    def revoke_all_user_tokens(self, user_id: str) -> int:
        """Revoke every refresh token owned by ``user_id``."""
        with self._lock:
            tokens = [t for t, e in self._refresh_tokens.items() if e.user_id == user_id]
            for token in tokens:
                del self._refresh_tokens[token]
        if tokens:
            logger.info(f"Revoked {len(tokens)} refresh token(s) for user {user_id}")
        return len(tokens)

    def active_tokens_for_user(self, user_id: str) -> int:
        """Number of unexpired refresh tokens owned by ``user_id``."""
        with self._lock:
            return sum(
                1 for e in self._refresh_tokens.values()
                if e.user_id == user_id and not e.is_expired
            )

    def blacklist(self, jti: str, expires_at: datetime | None = None) -> None:
        """Reject the access token with this ``jti`` until it would expire anyway."""
        if not jti:
            return
        if expires_at is None:
            expires_at = datetime.now(timezone.utc) + timedelta(
                minutes=get_settings().access_token_expire_minutes
            )
        with self._lock:
            self._blacklist[jti] = expires_at

    def is_blacklisted(self, jti: str | None) -> bool:
        if not jti:
            return False
        with self._lock:
            return jti in self._blacklist

    def cleanup_expired(self) -> int:
        """Drop expired refresh tokens and blacklist entries.

        Returns:
            Number of entries removed
        """
        now = datetime.now(timezone.utc)
        with self._lock:
            expired_refresh = [t for t, e in self._refresh_tokens.items() if e.expires_at <= now]
            for token in expired_refresh:
                del self._refresh_tokens[token]
            expired_jti = [j for j, exp in self._blacklist.items() if exp <= now]
            for jti in expired_jti:
                del self._blacklist[jti]
        removed = len(expired_refresh) + len(expired_jti)
        if removed:
            logger.info(f"🧹 Removed {removed} expired token entries")
        return removed

    def clear(self) -> None:
        with self._lock:
            self._refresh_tokens.clear()
            self._blacklist.clear()


_token_store: TokenStore | None = None


def get_token_store() -> TokenStore:
    """Get the process-wide token store."""
    global _token_store
    if _token_store is None:
        _token_store = TokenStore()
    return _token_store
