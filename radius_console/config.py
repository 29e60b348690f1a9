"""Application configuration loaded from environment variables and .env."""

import logging
import os
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


def get_database_url() -> str:
    """Get database URL from environment or generate default.

    Priority:
    1. DATABASE_URL environment variable
    2. RADIUS_DB_* vars for a MySQL/MariaDB FreeRADIUS database
    3. SQLite fallback under DATA_DIR
    """
    db_url = os.getenv("DATABASE_URL", "")
    if db_url:
        logger.info(f"📊 Database URL from environment: {db_url.split('@')[0].split('://')[0]}://...")
        return db_url

    db_host = os.getenv("RADIUS_DB_HOST")
    if db_host:
        db_port = os.getenv("RADIUS_DB_PORT", "3306")
        db_name = os.getenv("RADIUS_DB_NAME", "radius")
        db_user = os.getenv("RADIUS_DB_USER", "radius")
        db_pass = os.getenv("RADIUS_DB_PASSWORD", "")
        db_url = f"mysql+pymysql://{db_user}:{db_pass}@{db_host}:{db_port}/{db_name}"
        logger.info(f"📊 Database: MariaDB ({db_host})")
        return db_url

    data_dir = Path(os.getenv("DATA_DIR", "./data"))
    data_dir.mkdir(parents=True, exist_ok=True)
    db_url = f"sqlite:///{data_dir}/radius_console.db"
    logger.info(f"📊 Database: SQLite ({data_dir}/radius_console.db)")
    return db_url


class Settings(BaseSettings):
    """Application settings from environment variables."""

    database_url: str = ""

    # JWT
    jwt_secret_key: str = "change-this-in-production-use-strong-random-key"
    jwt_algorithm: str = "HS256"
    jwt_issuer: str = "radius-console"
    jwt_audience: str = "radius-console"
    access_token_expire_minutes: int = 15
    refresh_token_expire_days: int = 7

    # Two-factor
    totp_issuer: str = "radius-console"
    totp_window: int = 1
    # Fernet key for TOTP secrets at rest; derived from jwt_secret_key if unset
    settings_encryption_key: str = ""

    # Audit retention and monitoring
    audit_archive_path: str = "./data/audit_archive"
    audit_min_retention_days: int = 30
    failed_login_alert_threshold: int = 5
    anomaly_actions_per_hour: int = 50

    # Bootstrap administrator (only used when no console users exist)
    admin_username: str = ""
    admin_password: str = ""
    admin_email: str = ""

    api_port: int = 8000
    api_host: str = "127.0.0.1"  # Bind to localhost by default for security
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


# Singleton with lazy initialization
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get settings instance.

    The database URL is resolved once, on first use, so env vars set by
    test harnesses before import are honoured.
    """
    global _settings

    if _settings is not None:
        return _settings

    settings = Settings()
    if not settings.database_url:
        settings.database_url = get_database_url()
    _settings = settings

    logger.info(
        "⚙️  Console settings loaded: db=%s, jwt_issuer=%s, access_ttl=%sm, refresh_ttl=%sd",
        "MariaDB" if "mysql" in _settings.database_url else "SQLite",
        _settings.jwt_issuer,
        _settings.access_token_expire_minutes,
        _settings.refresh_token_expire_days,
    )

    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None
