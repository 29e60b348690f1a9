"""API endpoints."""

from .health import router as health_router
from .auth import router as auth_router
from .users import router as users_router
from .radius import router as radius_router
from .audit import router as audit_router
from .dashboard import router as dashboard_router

__all__ = [
    "health_router",
    "auth_router",
    "users_router",
    "radius_router",
    "audit_router",
    "dashboard_router",
]
