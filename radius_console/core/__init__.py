"""Core modules."""

from .audit import AuditManager
from .dashboard import DashboardManager
from .radius import RadiusManager
from .users import UserManager

__all__ = [
    "AuditManager",
    "DashboardManager",
    "RadiusManager",
    "UserManager",
]
