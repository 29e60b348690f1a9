"""Engine, sessions and startup initialization for the console database.

The console shares one database with FreeRADIUS: MariaDB/MySQL through
pymysql in production, SQLite for development and tests.
"""

import logging
from collections.abc import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from radius_console.config import get_settings

logger = logging.getLogger(__name__)

_engine: Engine | None = None
_session_factory: sessionmaker | None = None


def _enable_sqlite_foreign_keys(dbapi_conn, connection_record) -> None:
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(db_url: str) -> Engine:
    """Engine for a SQLite or MySQL/MariaDB URL.

    In-memory SQLite uses a single shared connection so every session sees
    the same schema. MySQL connections are pre-pinged and recycled before
    the server's idle timeout, with utf8mb4 unless the URL says otherwise.

    Raises:
        ValueError: Empty or unsupported URL
    """
    if db_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in db_url or db_url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(db_url, **kwargs)
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    if db_url.startswith("mysql"):
        kwargs = {"pool_pre_ping": True, "pool_recycle": 3600}
        if "charset=" not in db_url:
            kwargs["connect_args"] = {"charset": "utf8mb4"}
        return create_engine(db_url, **kwargs)

    raise ValueError(f"Unsupported database URL: {db_url.split('://')[0] or '<empty>'}")


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        _engine = build_engine(get_settings().database_url)
    return _engine


def get_db() -> Generator[Session, None, None]:
    """Request-scoped session, closed when the request ends."""
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(autocommit=False, autoflush=False, bind=get_engine())
    db = _session_factory()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create the console and RADIUS tables that are missing, then seed roles."""
    from radius_console.db.init_schema import create_schema, init_default_data

    engine = get_engine()
    logger.info(f"📊 Database backend: {engine.dialect.name}")
    create_schema(engine)
    init_default_data(engine)
