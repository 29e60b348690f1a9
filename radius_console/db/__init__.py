"""Database module."""

from .database import build_engine, get_db, get_engine, init_db
from .models import (
    AppUser,
    AuditLog,
    Base,
    RadAcct,
    RadCheck,
    RadPostAuth,
    RadReply,
    RadUserGroup,
    RbacRole,
)

__all__ = [
    "AppUser",
    "AuditLog",
    "Base",
    "RadAcct",
    "RadCheck",
    "RadPostAuth",
    "RadReply",
    "RadUserGroup",
    "RbacRole",
    "build_engine",
    "get_db",
    "get_engine",
    "init_db",
]
