"""API dependencies for authentication and database access."""

import logging
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from radius_console.core.security import decode_access_token
from radius_console.core.tokens import get_token_store
from radius_console.db.database import get_db as get_database_session
from radius_console.db.init_schema import ROLE_ADMIN, ROLE_MANAGER
from radius_console.db.models import AppUser

logger = logging.getLogger(__name__)

# Security scheme
security = HTTPBearer(auto_error=False)


def get_client_ip(request: Request) -> str | None:
    """Client address, honouring the first ``X-Forwarded-For`` hop."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def get_user_agent(request: Request) -> str | None:
    return request.headers.get("user-agent")


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    request: Request,
    db: Annotated[Session, Depends(get_database_session)],
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> dict:
    """Verify the bearer access token and load its user.

    Args:
        request: FastAPI request object
        db: Database session
        credentials: Bearer token credentials

    Returns:
        Principal dictionary with ``sub``, ``username``, ``roles``, ``jti``,
        ``exp``, ``ip`` and ``user_agent``

    Raises:
        HTTPException: 401 if the token is missing, invalid, revoked, or its
            user no longer exists or is inactive
    """
    ip = get_client_ip(request)

    if not credentials:
        logger.warning(f"Missing authentication from {ip or 'unknown'}")
        raise _unauthorized("Authentication required")

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        logger.warning(f"Invalid token from {ip or 'unknown'}")
        raise _unauthorized("Invalid or expired token")

    jti = payload.get("jti")
    if get_token_store().is_blacklisted(jti):
        logger.warning(f"Revoked token used from {ip or 'unknown'}")
        raise _unauthorized("Token has been revoked")

    user = db.get(AppUser, payload.get("sub"))
    if user is None or not user.is_active:
        logger.warning(f"Token for missing or inactive user {payload.get('sub')} from {ip or 'unknown'}")
        raise _unauthorized("User not found or inactive")

    return {
        "sub": user.id,
        "username": user.username,
        "roles": list(payload.get("roles") or []),
        "jti": jti,
        "exp": payload.get("exp"),
        "ip": ip,
        "user_agent": get_user_agent(request),
    }


def require_roles(*roles: str):
    """Dependency factory: the principal must hold at least one of ``roles``."""

    async def checker(current_user: Annotated[dict, Depends(get_current_user)]) -> dict:
        if not set(roles) & set(current_user["roles"]):
            logger.warning(
                f"User {current_user['username']} denied; requires one of {list(roles)}"
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return current_user

    return checker


def is_admin(principal: dict) -> bool:
    return ROLE_ADMIN in principal["roles"]


# Type aliases for dependency injection
DbSession = Annotated[Session, Depends(get_database_session)]
CurrentUser = Annotated[dict, Depends(get_current_user)]
ManagerUser = Annotated[dict, Depends(require_roles(ROLE_ADMIN, ROLE_MANAGER))]
AdminUser = Annotated[dict, Depends(require_roles(ROLE_ADMIN))]
