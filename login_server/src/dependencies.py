"""
FastAPI dependency injection for database access and services.

Resources are created once in the application lifespan and kept on
app.state; these dependencies only look them up, so tests can replace any
of them through app.dependency_overrides.
"""

from typing import Optional

import asyncpg
import structlog
from fastapi import HTTPException, Request, status

from login_server.src.services.auth_service import AuthService

logger = structlog.get_logger(__name__)


def get_db_pool(request: Request) -> Optional[asyncpg.Pool]:
    """
    Get database connection pool.

    Returns:
        asyncpg connection pool, or None before startup completed
    """
    return getattr(request.app.state, "db_pool", None)


def get_auth_service(request: Request) -> AuthService:
    """
    Get the authentication service created at startup.

    Raises:
        HTTPException: 503 if the service has not been initialized
    """
    service: Optional[AuthService] = getattr(request.app.state, "auth_service", None)
    if service is None:
        logger.error("auth_service_not_initialized")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not available"
        )
    return service
