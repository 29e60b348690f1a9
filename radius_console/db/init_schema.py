"""Database schema initialization and default data."""

import logging

from sqlalchemy import inspect, select
from sqlalchemy.orm import sessionmaker

from radius_console.config import get_settings
from radius_console.db.models import AppUser, Base, RbacRole, RbacUserRole

logger = logging.getLogger(__name__)

ROLE_ADMIN = "Admin"
ROLE_MANAGER = "Manager"
ROLE_USER = "User"

DEFAULT_ROLES = {
    ROLE_ADMIN: (
        "Full access to console users, RADIUS data, audit retention and settings",
        [
            "users.read", "users.write", "users.delete", "roles.manage",
            "radius.read", "radius.write", "sessions.disconnect",
            "audit.read", "audit.export", "audit.manage",
            "dashboard.read", "settings.manage",
        ],
    ),
    ROLE_MANAGER: (
        "Day-to-day RADIUS administration and reporting",
        [
            "users.read", "users.write",
            "radius.read", "radius.write", "sessions.disconnect",
            "audit.read", "audit.export",
            "dashboard.read",
        ],
    ),
    ROLE_USER: (
        "Self-service access to own profile",
        ["profile.read", "profile.write"],
    ),
}


def create_schema(engine) -> None:
    """Create database schema if it doesn't exist.

    The FreeRADIUS tables are usually provisioned by the RADIUS server's own
    schema file; ``create_all`` skips any table that is already present.

    Args:
        engine: SQLAlchemy engine
    """
    logger.info("🔍 Checking database schema...")

    existing_tables = inspect(engine).get_table_names()
    tables_to_create = [name for name in Base.metadata.tables if name not in existing_tables]

    if tables_to_create:
        logger.info(f"📊 Creating missing tables: {tables_to_create}")
        Base.metadata.create_all(bind=engine)
        logger.info("✅ Database schema created successfully")
    else:
        logger.info("✅ All required tables already exist")


def init_default_data(engine) -> None:
    """Seed roles and the optional bootstrap administrator.

    Safe to call on every start: existing roles are left untouched and the
    administrator is only created while ``app_users`` is empty.

    Args:
        engine: SQLAlchemy engine
    """
    from radius_console.core.security import hash_password

    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = SessionLocal()

    try:
        for name, (description, permissions) in DEFAULT_ROLES.items():
            existing = db.execute(select(RbacRole).where(RbacRole.name == name)).scalar_one_or_none()
            if existing:
                continue
            logger.info(f"📝 Creating default role '{name}'...")
            db.add(RbacRole(name=name, description=description, permissions=permissions))
        db.flush()

        settings = get_settings()
        has_users = db.execute(select(AppUser.id).limit(1)).first() is not None

        if not has_users and settings.admin_username and settings.admin_password:
            logger.info(f"📝 Creating bootstrap administrator '{settings.admin_username}'...")
            admin = AppUser(
                username=settings.admin_username,
                email=settings.admin_email or f"{settings.admin_username}@localhost",
                password_hash=hash_password(settings.admin_password),
                is_active=True,
            )
            db.add(admin)
            db.flush()

            admin_role = db.execute(
                select(RbacRole).where(RbacRole.name == ROLE_ADMIN)
            ).scalar_one()
            db.add(RbacUserRole(user_id=admin.id, role_id=admin_role.id, assigned_by="system"))
            logger.info("✅ Bootstrap administrator created")
        elif not has_users:
            logger.warning("⚠️  No console users exist and ADMIN_USERNAME/ADMIN_PASSWORD are not set")

        db.commit()
        logger.info("✅ Default data initialized")
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Failed to initialize default data: {e}", exc_info=True)
        raise
    finally:
        db.close()
