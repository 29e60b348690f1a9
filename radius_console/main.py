"""RADIUS management console API - Main Application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from radius_console import __version__
from radius_console.api import (
    audit_router,
    auth_router,
    dashboard_router,
    health_router,
    radius_router,
    users_router,
)
from radius_console.config import get_settings
from radius_console.core.tokens import get_token_store
from radius_console.db.database import init_db

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    logger.info("=" * 60)
    logger.info("🚀 Starting RADIUS Management Console...")
    logger.info("=" * 60)

    settings = get_settings()
    logger.info(f"Database: {settings.database_url.split('://')[0]}")
    logger.info(f"JWT issuer: {settings.jwt_issuer}")

    init_db()
    logger.info("✅ Database schema and default data initialized")

    logger.info("=" * 60)
    logger.info("✅ RADIUS Management Console is ready!")
    logger.info("=" * 60)

    yield

    # Shutdown
    logger.info("Shutting down RADIUS Management Console...")
    removed = get_token_store().cleanup_expired()
    logger.info(f"🧹 Removed {removed} expired tokens")
    logger.info("Shutdown complete")


app = FastAPI(
    title="RADIUS Management Console API",
    description="""
    # RADIUS Management Console API

    Web management for a FreeRADIUS SQL database.

    ## Features

    - **Console Users**: Accounts, roles (Admin, Manager, User) and two-factor authentication
    - **RADIUS Users and Groups**: radcheck, radreply, radusergroup and group attribute management
    - **Sessions**: Accounting records, disconnect and CoA requests
    - **Audit**: Every change is recorded; search, export, retention and compliance reports
    - **Dashboard**: Session, authentication, network and group statistics

    ## Authentication

    All endpoints except `/`, `/health`, login, registration and token refresh require a Bearer token:

    ```
    Authorization: Bearer YOUR_TOKEN_HERE
    ```
    """,
    version=__version__,
    openapi_tags=[
        {"name": "Health", "description": "Health check (no authentication required)"},
        {"name": "auth", "description": "Login, tokens, registration and passwords"},
        {"name": "users", "description": "Console user and role management"},
        {"name": "radius", "description": "RADIUS users, groups, sessions and statistics"},
        {"name": "audit", "description": "Audit log queries, exports, retention and reports"},
        {"name": "dashboard", "description": "Dashboard statistics"},
    ],
    lifespan=lifespan,
    swagger_ui_parameters={
        "persistAuthorization": True,
        "displayRequestDuration": True,
    },
)


# Include routers with tags
app.include_router(health_router, tags=["Health"])
app.include_router(auth_router)
app.include_router(users_router)
app.include_router(radius_router)
app.include_router(audit_router)
app.include_router(dashboard_router)


@app.get("/")
async def root() -> dict:
    """Root endpoint."""
    return {
        "service": "RADIUS Management Console",
        "version": __version__,
        "status": "operational",
    }


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler for unhandled errors."""
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": "An internal error occurred. Please check logs."},
    )


def run() -> None:
    """Serve the API with uvicorn."""
    import uvicorn

    settings = get_settings()

    # Set log level from config
    logging.getLogger().setLevel(getattr(logging, settings.log_level.upper()))

    logger.info(f"Starting server on {settings.api_host}:{settings.api_port}...")
    if settings.api_host == "127.0.0.1":
        logger.info("⚠️  API bound to localhost only - set API_HOST=0.0.0.0 to expose it")

    uvicorn.run(
        "radius_console.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
        reload=False,
    )


if __name__ == "__main__":
    run()
