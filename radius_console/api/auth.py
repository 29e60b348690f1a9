"""Authentication API endpoints: login, tokens, registration and passwords."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from radius_console.api.deps import (
    AdminUser,
    CurrentUser,
    DbSession,
    get_client_ip,
    get_user_agent,
)
from radius_console.core.audit import ENTITY_USER, AuditManager
from radius_console.core.exceptions import AuthenticationError, ConflictError
from radius_console.core.security import create_access_token, verify_password
from radius_console.core.tokens import get_token_store
from radius_console.core.users import UserManager
from radius_console.db.init_schema import ROLE_USER
from radius_console.db.models import RbacRole
from radius_console.schemas.auth import (
    ChangePasswordRequest,
    CurrentUserResponse,
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    LogoutRequest,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
)
from radius_console.schemas.common import MessageResponse
from radius_console.schemas.users import UserResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

FORGOT_PASSWORD_MESSAGE = "If an account with that email exists, a reset has been requested"


def _issue_tokens(manager: UserManager, user) -> LoginResponse:
    roles = manager.get_roles(user)
    access_token, expires_at = create_access_token(user, roles)
    refresh_token = get_token_store().issue_refresh_token(user.id)
    return LoginResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_at=expires_at,
        user=UserResponse.from_user(user, roles),
    )


def _login_failed(db, audit: AuditManager, username: str, reason: str, request: Request) -> HTTPException:
    audit.log_authentication_attempt(
        username,
        success=False,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
        reason=reason,
    )
    db.commit()
    logger.warning(f"❌ Login failed for '{username}': {reason}")
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid username or password",
        headers={"WWW-Authenticate": "Bearer"},
    )


@router.post("/login", response_model=LoginResponse)
async def login(
    credentials: LoginRequest,
    request: Request,
    db: DbSession,
) -> LoginResponse:
    """Exchange credentials (and a TOTP code when enabled) for tokens.

    Args:
        credentials: Username, password and optional TOTP code
        request: FastAPI request object
        db: Database session

    Returns:
        Access and refresh tokens, or ``requires_totp`` when a code is needed

    Raises:
        HTTPException: 401 on bad credentials, inactive account or bad code
    """
    manager = UserManager(db)
    audit = AuditManager(db)

    user = manager.get_by_username(credentials.username)
    if user is None or not verify_password(credentials.password, user.password_hash):
        raise _login_failed(db, audit, credentials.username, "invalid_credentials", request)
    if not user.is_active:
        raise _login_failed(db, audit, credentials.username, "account_inactive", request)

    if user.is_totp_enabled:
        if not credentials.totp_code:
            logger.info(f"🔍 Two-factor code required for '{user.username}'")
            return LoginResponse(requires_totp=True)
        if not manager.validate_totp(user, credentials.totp_code):
            raise _login_failed(db, audit, credentials.username, "invalid_totp", request)

    manager.record_login(user)
    audit.log_authentication_attempt(
        user.username,
        success=True,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
        actor_id=user.id,
    )
    db.commit()

    logger.info(f"✅ User '{user.username}' logged in")
    return _issue_tokens(manager, user)


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(
    data: RegisterRequest,
    request: Request,
    db: DbSession,
) -> UserResponse:
    """Create a console account with the ``User`` role.

    Raises:
        HTTPException: 409 if the username or email is taken
    """
    manager = UserManager(db)
    try:
        user = manager.create(
            username=data.username,
            email=data.email,
            password=data.password,
            first_name=data.first_name,
            last_name=data.last_name,
            roles=[ROLE_USER],
        )
        AuditManager(db).log(
            "USER_REGISTERED",
            ENTITY_USER,
            user.id,
            actor_id=user.id,
            after={"username": user.username, "email": user.email},
            ip_address=get_client_ip(request),
            user_agent=get_user_agent(request),
        )
        db.commit()
        db.refresh(user)
    except ConflictError as e:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    except IntegrityError as e:
        db.rollback()
        logger.error(f"Database integrity error registering user: {e}")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Registration failed due to database constraint violation",
        ) from e

    logger.info(f"✅ Registered console user '{user.username}'")
    return UserResponse.from_user(user, manager.get_roles(user))


@router.post("/refresh", response_model=LoginResponse)
async def refresh(data: RefreshRequest, db: DbSession) -> LoginResponse:
    """Rotate a refresh token and issue a new access token.

    Raises:
        HTTPException: 401 if the refresh token is unknown or expired, or the
            user is gone or inactive
    """
    store = get_token_store()
    rotated = store.rotate_refresh_token(data.refresh_token)
    if rotated is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid refresh token")

    user_id, new_refresh_token = rotated
    manager = UserManager(db)
    user = manager.get_by_id(user_id)
    if user is None or not user.is_active:
        store.revoke_refresh_token(new_refresh_token)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found or inactive")

    roles = manager.get_roles(user)
    access_token, expires_at = create_access_token(user, roles)
    return LoginResponse(
        access_token=access_token,
        refresh_token=new_refresh_token,
        expires_at=expires_at,
        user=UserResponse.from_user(user, roles),
    )


@router.post("/logout", response_model=MessageResponse)
async def logout(
    data: LogoutRequest,
    current_user: CurrentUser,
    db: DbSession,
) -> MessageResponse:
    """Revoke the refresh token and the current access token."""
    store = get_token_store()
    if data.refresh_token:
        store.revoke_refresh_token(data.refresh_token)

    exp = current_user.get("exp")
    store.blacklist(
        current_user["jti"],
        datetime.fromtimestamp(exp, tz=timezone.utc) if exp else None,
    )

    AuditManager(db).log(
        "USER_LOGOUT",
        ENTITY_USER,
        current_user["sub"],
        actor_id=current_user["sub"],
        ip_address=current_user["ip"],
        user_agent=current_user["user_agent"],
    )
    db.commit()

    logger.info(f"User '{current_user['username']}' logged out")
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=CurrentUserResponse)
async def me(current_user: CurrentUser, db: DbSession) -> CurrentUserResponse:
    """Profile, roles and permissions of the authenticated user."""
    manager = UserManager(db)
    user = manager.get_by_id(current_user["sub"])
    roles = manager.get_roles(user)

    permissions: set[str] = set()
    for role in db.execute(select(RbacRole).where(RbacRole.name.in_(roles))).scalars():
        permissions.update(role.permissions or [])

    response = CurrentUserResponse.from_user(user, roles)
    response.permissions = sorted(permissions)
    return response


@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    data: ChangePasswordRequest,
    current_user: CurrentUser,
    db: DbSession,
) -> MessageResponse:
    """Change own password; every refresh token of the user is revoked.

    Raises:
        HTTPException: 400 if the current password is wrong
    """
    manager = UserManager(db)
    user = manager.get_by_id(current_user["sub"])
    try:
        manager.change_password(user, data.current_password, data.new_password)
    except AuthenticationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    AuditManager(db).log_password_change(
        current_user["sub"],
        user.id,
        ip_address=current_user["ip"],
        user_agent=current_user["user_agent"],
    )
    db.commit()
    get_token_store().revoke_all_user_tokens(user.id)

    logger.info(f"✅ Password changed for '{user.username}'")
    return MessageResponse(message="Password changed successfully")


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    data: ForgotPasswordRequest,
    request: Request,
    db: DbSession,
) -> MessageResponse:
    """Record a reset request. The response never reveals whether the email exists."""
    user = UserManager(db).get_by_email(data.email)
    if user is not None:
        AuditManager(db).log(
            "PASSWORD_RESET_REQUESTED",
            ENTITY_USER,
            user.id,
            actor_id=None,
            after={"email": user.email},
            ip_address=get_client_ip(request),
            user_agent=get_user_agent(request),
        )
        db.commit()
        logger.info(f"📝 Password reset requested for user {user.id}")
    return MessageResponse(message=FORGOT_PASSWORD_MESSAGE)


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    data: ResetPasswordRequest,
    admin: AdminUser,
    db: DbSession,
) -> MessageResponse:
    """Set a new password for the user with ``email`` (administrators only).

    Raises:
        HTTPException: 404 if no user has that email
    """
    manager = UserManager(db)
    user = manager.get_by_email(data.email)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    manager.reset_password(user, data.new_password)

    AuditManager(db).log_password_change(
        admin["sub"],
        user.id,
        action="PASSWORD_RESET",
        ip_address=admin["ip"],
        user_agent=admin["user_agent"],
    )
    db.commit()
    get_token_store().revoke_all_user_tokens(user.id)

    logger.info(f"✅ Admin {admin['username']} reset password for '{user.username}'")
    return MessageResponse(message="Password reset successfully")
