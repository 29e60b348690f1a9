"""Console user administration API endpoints."""

import logging

from fastapi import APIRouter, HTTPException, Query, status
from sqlalchemy.exc import IntegrityError

from radius_console.api.deps import AdminUser, CurrentUser, DbSession, ManagerUser, is_admin
from radius_console.core import totp
from radius_console.core.audit import ENTITY_USER, AuditManager
from radius_console.core.exceptions import ConflictError, ValidationError
from radius_console.core.tokens import get_token_store
from radius_console.core.users import UserManager
from radius_console.db.models import AppUser
from radius_console.schemas.common import MessageResponse, PaginatedResponse
from radius_console.schemas.users import (
    RoleAssignmentRequest,
    RoleResponse,
    TotpDisableRequest,
    TotpEnableRequest,
    TotpSetupResponse,
    UserCreate,
    UserResponse,
    UserUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])


def _get_user_or_404(manager: UserManager, user_id: str) -> AppUser:
    user = manager.get_by_id(user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"User {user_id} not found",
        )
    return user


def _snapshot(manager: UserManager, user: AppUser) -> dict:
    return {
        "username": user.username,
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "is_active": user.is_active,
        "roles": manager.get_roles(user),
    }


def _require_admin_for_roles(principal: dict, roles: list[str] | None) -> None:
    if roles is not None and not is_admin(principal):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only administrators can set roles",
        )


def _require_self_or_admin(principal: dict, user_id: str) -> None:
    if principal["sub"] != user_id and not is_admin(principal):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only manage two-factor authentication for your own account",
        )


@router.get("", response_model=PaginatedResponse[UserResponse])
async def list_users(
    admin: ManagerUser,
    db: DbSession,
    page: int = Query(1, ge=1, description="Page number (1-indexed)"),
    page_size: int = Query(10, ge=1, le=100, description="Items per page"),
    search: str | None = Query(None, description="Search username or email"),
) -> PaginatedResponse[UserResponse]:
    """List console users with pagination.

    Args:
        admin: Authenticated Admin or Manager
        db: Database session
        page: Page number
        page_size: Items per page
        search: Optional username/email filter

    Returns:
        Paginated list of users
    """
    logger.info(f"User {admin['username']} listing console users (page={page})")
    manager = UserManager(db)
    users, total = manager.search(page, page_size, search)
    items = [UserResponse.from_user(u, manager.get_roles(u)) for u in users]
    return PaginatedResponse[UserResponse].build(items, total, page, page_size)


@router.get("/roles", response_model=list[RoleResponse])
async def list_roles(admin: ManagerUser, db: DbSession) -> list[RoleResponse]:
    """List available roles."""
    return [RoleResponse.model_validate(r) for r in UserManager(db).list_roles()]


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(user_id: str, admin: ManagerUser, db: DbSession) -> UserResponse:
    """Get a console user by ID.

    Raises:
        HTTPException: 404 if the user does not exist
    """
    manager = UserManager(db)
    user = _get_user_or_404(manager, user_id)
    return UserResponse.from_user(user, manager.get_roles(user))


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    user_data: UserCreate,
    admin: ManagerUser,
    db: DbSession,
) -> UserResponse:
    """Create a console user.

    Args:
        user_data: New user details
        admin: Authenticated Admin or Manager
        db: Database session

    Returns:
        Created user

    Raises:
        HTTPException: 409 on duplicate username/email, 400 on unknown role, 403 when
            a non-administrator sets roles
    """
    logger.info(f"User {admin['username']} creating console user: {user_data.username}")
    _require_admin_for_roles(admin, user_data.roles or None)
    manager = UserManager(db)

    try:
        user = manager.create(
            username=user_data.username,
            email=user_data.email,
            password=user_data.password,
            first_name=user_data.first_name,
            last_name=user_data.last_name,
            roles=user_data.roles or None,
            assigned_by=admin["sub"],
        )
        AuditManager(db).log(
            "USER_CREATED",
            ENTITY_USER,
            user.id,
            actor_id=admin["sub"],
            after=_snapshot(manager, user),
            ip_address=admin["ip"],
            user_agent=admin["user_agent"],
        )
        db.commit()
        db.refresh(user)
    except ConflictError as e:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    except ValidationError as e:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except IntegrityError as e:
        db.rollback()
        logger.error(f"Database integrity error creating console user: {e}")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User creation failed due to database constraint violation",
        ) from e

    logger.info(f"✅ Created console user: {user.username}")
    return UserResponse.from_user(user, manager.get_roles(user))


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    user_data: UserUpdate,
    admin: ManagerUser,
    db: DbSession,
) -> UserResponse:
    """Update a console user.

    Raises:
        HTTPException: 404 if missing, 409 on email conflict, 400 on unknown role, 403
            when a non-administrator sets roles
    """
    logger.info(f"User {admin['username']} updating console user {user_id}")
    _require_admin_for_roles(admin, user_data.roles)
    manager = UserManager(db)
    user = _get_user_or_404(manager, user_id)
    before = _snapshot(manager, user)

    update = user_data.model_dump(exclude_unset=True)
    try:
        manager.update(
            user,
            email=update.get("email"),
            first_name=update.get("first_name"),
            last_name=update.get("last_name"),
            roles=update.get("roles"),
            assigned_by=admin["sub"],
        )
        AuditManager(db).log(
            "USER_UPDATED",
            ENTITY_USER,
            user.id,
            actor_id=admin["sub"],
            before=before,
            after=_snapshot(manager, user),
            ip_address=admin["ip"],
            user_agent=admin["user_agent"],
        )
        db.commit()
        db.refresh(user)
    except ConflictError as e:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    except ValidationError as e:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except IntegrityError as e:
        db.rollback()
        logger.error(f"Database integrity error updating console user: {e}")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User update failed due to database constraint violation",
        ) from e

    logger.info(f"✅ Updated console user: {user.username}")
    return UserResponse.from_user(user, manager.get_roles(user))


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(user_id: str, admin: AdminUser, db: DbSession) -> None:
    """Delete a console user (administrators only).

    Raises:
        HTTPException: 404 if missing, 400 when deleting yourself
    """
    if user_id == admin["sub"]:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot delete your own account",
        )

    manager = UserManager(db)
    user = _get_user_or_404(manager, user_id)
    before = _snapshot(manager, user)

    manager.delete(user)
    AuditManager(db).log(
        "USER_DELETED",
        ENTITY_USER,
        user_id,
        actor_id=admin["sub"],
        before=before,
        ip_address=admin["ip"],
        user_agent=admin["user_agent"],
    )
    db.commit()

    logger.info(f"✅ Admin {admin['username']} deleted console user {before['username']}")


@router.post("/{user_id}/activate", response_model=MessageResponse)
async def activate_user(user_id: str, admin: ManagerUser, db: DbSession) -> MessageResponse:
    """Re-enable a console user.

    Raises:
        HTTPException: 404 if missing, 400 if already active
    """
    manager = UserManager(db)
    user = _get_user_or_404(manager, user_id)
    try:
        manager.activate(user)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    AuditManager(db).log(
        "USER_ACTIVATED",
        ENTITY_USER,
        user.id,
        actor_id=admin["sub"],
        before={"is_active": False},
        after={"is_active": True},
        ip_address=admin["ip"],
        user_agent=admin["user_agent"],
    )
    db.commit()
    return MessageResponse(message=f"User {user.username} activated")


@router.post("/{user_id}/deactivate", response_model=MessageResponse)
async def deactivate_user(user_id: str, admin: ManagerUser, db: DbSession) -> MessageResponse:
    """Disable a console user and revoke their refresh tokens.

    Raises:
        HTTPException: 404 if missing, 400 for yourself or if already inactive
    """
    if user_id == admin["sub"]:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot deactivate your own account",
        )

    manager = UserManager(db)
    user = _get_user_or_404(manager, user_id)
    try:
        manager.deactivate(user)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    AuditManager(db).log(
        "USER_DEACTIVATED",
        ENTITY_USER,
        user.id,
        actor_id=admin["sub"],
        before={"is_active": True},
        after={"is_active": False},
        ip_address=admin["ip"],
        user_agent=admin["user_agent"],
    )
    db.commit()

    get_token_store().revoke_all_user_tokens(user.id)
    return MessageResponse(message=f"User {user.username} deactivated")


@router.post("/{user_id}/assign-role", response_model=UserResponse)
async def assign_role(
    user_id: str,
    data: RoleAssignmentRequest,
    admin: AdminUser,
    db: DbSession,
) -> UserResponse:
    """Grant a role (administrators only).

    Raises:
        HTTPException: 404 if the user is missing, 400 on unknown role
    """
    manager = UserManager(db)
    user = _get_user_or_404(manager, user_id)
    try:
        changed = manager.assign_role(user, data.role, assigned_by=admin["sub"])
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    if changed:
        AuditManager(db).log_role_assignment(
            admin["sub"], user.id, data.role, assigned=True,
            ip_address=admin["ip"], user_agent=admin["user_agent"],
        )
        db.commit()
        logger.info(f"✅ Assigned role {data.role} to {user.username}")

    return UserResponse.from_user(user, manager.get_roles(user))


@router.post("/{user_id}/remove-role", response_model=UserResponse)
async def remove_role(
    user_id: str,
    data: RoleAssignmentRequest,
    admin: AdminUser,
    db: DbSession,
) -> UserResponse:
    """Revoke a role (administrators only).

    Raises:
        HTTPException: 404 if the user is missing, 400 on unknown role
    """
    manager = UserManager(db)
    user = _get_user_or_404(manager, user_id)
    try:
        changed = manager.remove_role(user, data.role)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    if changed:
        AuditManager(db).log_role_assignment(
            admin["sub"], user.id, data.role, assigned=False,
            ip_address=admin["ip"], user_agent=admin["user_agent"],
        )
        db.commit()
        logger.info(f"✅ Removed role {data.role} from {user.username}")

    return UserResponse.from_user(user, manager.get_roles(user))


@router.get("/{user_id}/totp/setup", response_model=TotpSetupResponse)
async def setup_totp(user_id: str, current_user: CurrentUser, db: DbSession) -> TotpSetupResponse:
    """Start two-factor enrollment; returns the secret and a QR code.

    Raises:
        HTTPException: 403 for another user's account (unless Admin), 404 if
            missing, 400 if already enabled
    """
    _require_self_or_admin(current_user, user_id)
    manager = UserManager(db)
    user = _get_user_or_404(manager, user_id)
    try:
        secret, uri = manager.setup_totp(user)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    db.commit()

    return TotpSetupResponse(
        secret=secret,
        provisioning_uri=uri,
        qr_code=totp.qr_code_data_url(uri),
    )


@router.post("/{user_id}/totp/enable", response_model=MessageResponse)
async def enable_totp(
    user_id: str,
    data: TotpEnableRequest,
    current_user: CurrentUser,
    db: DbSession,
) -> MessageResponse:
    """Confirm enrollment with a code from the authenticator app.

    Raises:
        HTTPException: 403, 404, or 400 if the code is invalid
    """
    _require_self_or_admin(current_user, user_id)
    manager = UserManager(db)
    user = _get_user_or_404(manager, user_id)
    if not manager.enable_totp(user, data.code):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid verification code")

    AuditManager(db).log(
        "TOTP_ENABLED",
        ENTITY_USER,
        user.id,
        actor_id=current_user["sub"],
        ip_address=current_user["ip"],
        user_agent=current_user["user_agent"],
    )
    db.commit()
    return MessageResponse(message="Two-factor authentication enabled")


@router.post("/{user_id}/totp/disable", response_model=MessageResponse)
async def disable_totp(
    user_id: str,
    data: TotpDisableRequest,
    current_user: CurrentUser,
    db: DbSession,
) -> MessageResponse:
    """Turn off two-factor; requires the account password.

    Raises:
        HTTPException: 403, 404, or 400 if the password is wrong
    """
    _require_self_or_admin(current_user, user_id)
    manager = UserManager(db)
    user = _get_user_or_404(manager, user_id)
    if not manager.disable_totp(user, data.password):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid password")

    AuditManager(db).log(
        "TOTP_DISABLED",
        ENTITY_USER,
        user.id,
        actor_id=current_user["sub"],
        ip_address=current_user["ip"],
        user_agent=current_user["user_agent"],
    )
    db.commit()
    return MessageResponse(message="Two-factor authentication disabled")
