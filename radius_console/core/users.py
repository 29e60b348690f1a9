"""Console user management: accounts, roles, passwords and two-factor."""

import logging
from datetime import datetime, timezone

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from radius_console.config import get_settings
from radius_console.core import totp
from radius_console.core.exceptions import (
    AuthenticationError,
    ConflictError,
    ValidationError,
)
from radius_console.core.security import (
    decrypt_secret,
    encrypt_secret,
    hash_password,
    verify_password,
)
from radius_console.db.init_schema import ROLE_USER
from radius_console.db.models import AppUser, RbacRole, RbacUserRole

logger = logging.getLogger(__name__)


class UserManager:
    """Manages console operator accounts and their role memberships."""

    def __init__(self, db: Session):
        """
        Initialize user manager.

        Args:
            db: Database session
        """
        self.db = db

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_by_id(self, user_id: str) -> AppUser | None:
        return self.db.get(AppUser, user_id)

    def get_by_username(self, username: str) -> AppUser | None:
        return self.db.execute(
            select(AppUser).where(AppUser.username == username)
        ).scalar_one_or_none()

    def get_by_email(self, email: str) -> AppUser | None:
        return self.db.execute(
            select(AppUser).where(func.lower(AppUser.email) == email.lower())
        ).scalar_one_or_none()

    def get_roles(self, user: AppUser) -> list[str]:
        """Role names of ``user``, sorted."""
        stmt = (
            select(RbacRole.name)
            .join(RbacUserRole, RbacUserRole.role_id == RbacRole.id)
            .where(RbacUserRole.user_id == user.id)
            .order_by(RbacRole.name)
        )
        return list(self.db.execute(stmt).scalars().all())

    def get_role(self, name: str) -> RbacRole | None:
        return self.db.execute(
            select(RbacRole).where(RbacRole.name == name)
        ).scalar_one_or_none()

    def list_roles(self) -> list[RbacRole]:
        return list(self.db.execute(select(RbacRole).order_by(RbacRole.name)).scalars().all())

    def search(
        self,
        page: int = 1,
        page_size: int = 10,
        search: str | None = None,
    ) -> tuple[list[AppUser], int]:
        """Page through users, optionally filtering on username or email.

        Args:
            page: Page number (1-indexed)
            page_size: Items per page
            search: Substring matched against username and email

        Returns:
            Tuple of (users on this page, total matching users)
        """
        query = select(AppUser)
        if search:
            pattern = f"%{search}%"
            query = query.where(or_(AppUser.username.ilike(pattern), AppUser.email.ilike(pattern)))

        total = self.db.execute(select(func.count()).select_from(query.subquery())).scalar() or 0

        query = query.order_by(AppUser.username).offset((page - 1) * page_size).limit(page_size)
        users = list(self.db.execute(query).scalars().all())
        return users, total

    def count(self) -> int:
        return self.db.execute(select(func.count(AppUser.id))).scalar() or 0

    def count_active(self) -> int:
        return self.db.execute(
            select(func.count(AppUser.id)).where(AppUser.is_active.is_(True))
        ).scalar() or 0

    def count_created_since(self, since: datetime) -> int:
        return self.db.execute(
            select(func.count(AppUser.id)).where(AppUser.created_at >= since)
        ).scalar() or 0

    def get_users_by_role(self, role_name: str) -> list[AppUser]:
        stmt = (
            select(AppUser)
            .join(RbacUserRole, RbacUserRole.user_id == AppUser.id)
            .join(RbacRole, RbacRole.id == RbacUserRole.role_id)
            .where(RbacRole.name == role_name)
            .order_by(AppUser.username)
        )
        return list(self.db.execute(stmt).scalars().all())

    def is_username_available(self, username: str) -> bool:
        return self.get_by_username(username) is None

    def is_email_available(self, email: str) -> bool:
        return self.get_by_email(email) is None

    # ------------------------------------------------------------------
    # Account lifecycle
    # ------------------------------------------------------------------

    def create(
        self,
        username: str,
        email: str,
        password: str,
        first_name: str | None = None,
        last_name: str | None = None,
        roles: list[str] | None = None,
        assigned_by: str | None = None,
    ) -> AppUser:
        """Create a user and assign roles (``User`` when none are given).

        The caller commits.

        Raises:
            ConflictError: Username or email already in use
            ValidationError: A requested role does not exist
        """
        if not self.is_username_available(username):
            raise ConflictError(f"Username '{username}' is already taken")
        if not self.is_email_available(email):
            raise ConflictError(f"Email '{email}' is already registered")

        role_names = roles or [ROLE_USER]
        role_rows = [self._require_role(name) for name in role_names]

        user = AppUser(
            username=username,
            email=email,
            password_hash=hash_password(password),
            first_name=first_name,
            last_name=last_name,
            is_active=True,
        )
        self.db.add(user)
        self.db.flush()

        for role in role_rows:
            self.db.add(RbacUserRole(user_id=user.id, role_id=role.id, assigned_by=assigned_by))
        self.db.flush()

        logger.info(f"Created console user '{username}' with roles {role_names}")
        return user

    def update(
        self,
        user: AppUser,
        email: str | None = None,
        first_name: str | None = None,
        last_name: str | None = None,
        roles: list[str] | None = None,
        assigned_by: str | None = None,
    ) -> AppUser:
        """Update profile fields; ``roles`` replaces the role set when given.

        Raises:
            ConflictError: Email belongs to another user
            ValidationError: A requested role does not exist
        """
        if email is not None and email.lower() != user.email.lower():
            other = self.get_by_email(email)
            if other is not None and other.id != user.id:
                raise ConflictError(f"Email '{email}' is already registered")
            user.email = email

        if first_name is not None:
            user.first_name = first_name
        if last_name is not None:
            user.last_name = last_name

        if roles is not None:
            wanted = {name: self._require_role(name) for name in roles}
            current = set(self.get_roles(user))
            for name in current - wanted.keys():
                self.remove_role(user, name)
            for name in wanted.keys() - current:
                self.assign_role(user, name, assigned_by=assigned_by)

        user.updated_at = datetime.now(timezone.utc)
        self.db.flush()
        return user

    def delete(self, user: AppUser) -> None:
        self.db.delete(user)
        self.db.flush()
        logger.info(f"Deleted console user '{user.username}'")

    def activate(self, user: AppUser) -> None:
        if user.is_active:
            raise ValidationError("User is already active")
        user.is_active = True
        self.db.flush()

    def deactivate(self, user: AppUser) -> None:
        if not user.is_active:
            raise ValidationError("User is already inactive")
        user.is_active = False
        self.db.flush()

    # ------------------------------------------------------------------
    # Passwords and login
    # ------------------------------------------------------------------

    def authenticate(self, username: str, password: str) -> AppUser | None:
        """Return the user if the password matches and the account is active."""
        user = self.get_by_username(username)
        if user is None or not user.is_active:
            return None
        if not verify_password(password, user.password_hash):
            return None
        return user

    def record_login(self, user: AppUser) -> None:
        user.last_login = datetime.now(timezone.utc)
        self.db.flush()

    def change_password(self, user: AppUser, current_password: str, new_password: str) -> None:
        """Change password after verifying the current one.

        Raises:
            AuthenticationError: ``current_password`` does not match
        """
        if not verify_password(current_password, user.password_hash):
            raise AuthenticationError("Current password is incorrect")
        user.password_hash = hash_password(new_password)
        self.db.flush()

    def reset_password(self, user: AppUser, new_password: str) -> None:
        user.password_hash = hash_password(new_password)
        self.db.flush()

    # ------------------------------------------------------------------
    # Two-factor
    # ------------------------------------------------------------------

    def setup_totp(self, user: AppUser) -> tuple[str, str]:
        """Generate and store a fresh secret; TOTP stays disabled until confirmed.

        Returns:
            Tuple of (base32 secret, otpauth URI)

        Raises:
            ValidationError: TOTP is already enabled
        """
        if user.is_totp_enabled:
            raise ValidationError("Two-factor authentication is already enabled")

        secret = totp.generate_secret()
        user.totp_secret = encrypt_secret(secret)
        user.totp_last_step = None
        self.db.flush()

        uri = totp.provisioning_uri(user.username, secret, get_settings().totp_issuer)
        return secret, uri

    def validate_totp(self, user: AppUser, code: str | None) -> bool:
        """Accept a code at most once.

        A code whose time step is not newer than the last accepted one is a
        replay and is rejected; an accepted step is recorded on the user.
        """
        if not user.totp_secret:
            return False
        secret = decrypt_secret(user.totp_secret)
        step = totp.matching_step(secret, code, window=get_settings().totp_window)
        if step is None:
            return False
        if user.totp_last_step is not None and step <= user.totp_last_step:
            logger.warning(f"⚠️  Reused two-factor code rejected for '{user.username}'")
            return False
        user.totp_last_step = step
        self.db.flush()
        return True

    def enable_totp(self, user: AppUser, code: str) -> bool:
        """Enable TOTP once the user proves their authenticator works."""
        if not self.validate_totp(user, code):
            return False
        user.is_totp_enabled = True
        self.db.flush()
        return True

    def disable_totp(self, user: AppUser, password: str) -> bool:
        """Disable TOTP; requires the account password."""
        if not verify_password(password, user.password_hash):
            return False
        user.is_totp_enabled = False
        user.totp_secret = None
        user.totp_last_step = None
        self.db.flush()
        return True

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def _require_role(self, name: str) -> RbacRole:
        role = self.get_role(name)
        if role is None:
            raise ValidationError(f"Role '{name}' does not exist")
        return role

    def assign_role(self, user: AppUser, role_name: str, assigned_by: str | None = None) -> bool:
        """Add ``role_name`` to ``user``. Returns False if already assigned."""
        role = self._require_role(role_name)
        if self.db.get(RbacUserRole, (user.id, role.id)) is not None:
            return False
        self.db.add(RbacUserRole(user_id=user.id, role_id=role.id, assigned_by=assigned_by))
        self.db.flush()
        return True

    def remove_role(self, user: AppUser, role_name: str) -> bool:
        """Remove ``role_name`` from ``user``. Returns False if not assigned."""
        role = self._require_role(role_name)
        link = self.db.get(RbacUserRole, (user.id, role.id))
        if link is None:
            return False
        self.db.delete(link)
        self.db.flush()
        return True

    def has_role(self, user: AppUser, role_name: str) -> bool:
        return role_name in self.get_roles(user)

    def has_any_role(self, user: AppUser, role_names: list[str]) -> bool:
        return bool(set(role_names) & set(self.get_roles(user)))
