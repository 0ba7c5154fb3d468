"""
FastAPI application entry point for the Twinsight login server.

This module provides the main FastAPI application with:
- Registration, login, session lookup and logout endpoints
- Health and readiness endpoints
- Request/response logging with correlation IDs
- Prometheus metrics
- CORS, security headers, and rate limiting
- Database connection pool management
- Graceful startup and shutdown
"""

import asyncio
import sys
import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import asyncpg
import structlog
import uvicorn
from fastapi import Depends, FastAPI, Request, Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from login_server.src.config import Settings, get_settings
from login_server.src.database import bootstrap_schema, create_pool
from login_server.src.dependencies import get_db_pool
from login_server.src.environment import Environment, describe, load_environment
from login_server.src.exceptions import (
    ConfigurationError, ExampleConfigCreated, FieldDecodeError
)
from login_server.src.rate_limit import limiter
from login_server.src.repositories import SessionRepository, UserRepository
from login_server.src.routers import auth_router
from login_server.src.services.auth_service import AuthService
from shared.logging import bind_context, configure_logging, unbind_context
from shared.metrics import HTTPMetrics, get_metrics_handler, setup_metrics
from shared.models import HealthReport, HealthStatus, ReadinessReport

logger = structlog.get_logger(__name__)


# ============================================================================
# Lifespan Management
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager for startup and shutdown events.

    Handles:
    - Loading the deployment environment (unless one was supplied)
    - Database connection pool initialization and schema bootstrap
    - Service and repository initialization
    - Graceful shutdown and resource cleanup
    """
    settings: Settings = app.state.settings

    logger.info(
        "application_starting",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment
    )

    try:
        environment: Optional[Environment] = getattr(app.state, "environment", None)
        if environment is None:
            environment = load_environment(settings.config_file)
            app.state.environment = environment

        logger.info("environment_ready", **describe(environment))

        app.state.db_pool = await create_pool(environment, settings)

        if settings.database_bootstrap_schema:
            await bootstrap_schema(app.state.db_pool)

        logger.info("initializing_repositories")
        user_repo = UserRepository(app.state.db_pool)
        session_repo = SessionRepository(app.state.db_pool)

        logger.info("initializing_services")
        auth_metrics = setup_metrics()[1] if settings.metrics_enabled else None
        app.state.auth_service = AuthService(
            user_repo,
            session_repo,
            environment,
            settings=settings,
            metrics=auth_metrics
        )

        purged = await app.state.auth_service.purge_expired_sessions()
        logger.info("expired_sessions_purged", count=purged)

        logger.info(
            "application_started",
            app_name=settings.app_name,
            version=settings.app_version,
            environment=settings.environment
        )

    except Exception as e:
        logger.error("application_startup_failed", error=str(e), exc_info=True)
        await _close_pool(app)
        raise

    try:
        yield
    finally:
        logger.info("application_shutting_down")
        await _close_pool(app)
        app.state.auth_service = None
        logger.info("application_shutdown_complete")


async def _close_pool(app: FastAPI) -> None:
    pool: Optional[asyncpg.Pool] = getattr(app.state, "db_pool", None)
    if pool is not None:
        logger.info("closing_database_pool")
        await pool.close()
        app.state.db_pool = None
        logger.info("database_pool_closed")


# ============================================================================
# Middleware
# ============================================================================

class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for request logging and metrics."""

    def __init__(self, app, metrics: Optional[HTTPMetrics] = None):
        super().__init__(app)
        self.metrics = metrics

    async def dispatch(self, request: Request, call_next):
        """Process request and log details."""
        correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())

        method = request.method
        path = request.url.path
        client_ip = request.client.host if request.client else "unknown"

        bind_context(correlation_id=correlation_id)
        if self.metrics:
            self.metrics.requests_in_progress.labels(method=method, endpoint=path).inc()

        start_time = time.perf_counter()

        logger.info(
            "request_started",
            method=method,
            path=path,
            client_ip=client_ip
        )

        try:
            response = await call_next(request)

            duration = time.perf_counter() - start_time

            if self.metrics:
                self.metrics.requests_total.labels(
                    method=method,
                    endpoint=path,
                    status=response.status_code
                ).inc()
                self.metrics.request_duration.labels(
                    method=method,
                    endpoint=path
                ).observe(duration)

            logger.info(
                "request_completed",
                method=method,
                path=path,
                status_code=response.status_code,
                duration=f"{duration:.3f}s"
            )

            response.headers["X-Correlation-ID"] = correlation_id
            return response

        except Exception as e:
            duration = time.perf_counter() - start_time
            logger.error(
                "request_failed",
                method=method,
                path=path,
                error=str(e),
                duration=f"{duration:.3f}s",
                exc_info=True
            )
            raise

        finally:
            if self.metrics:
                self.metrics.requests_in_progress.labels(method=method, endpoint=path).dec()
            unbind_context("correlation_id")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware to add security headers to responses."""

    def __init__(self, app, settings: Settings):
        super().__init__(app)
        self.settings = settings

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        if self.settings.security_require_https:
            response.headers["Strict-Transport-Security"] = (
                f"max-age={self.settings.security_hsts_max_age}; includeSubDomains"
            )

        return response


# ============================================================================
# Exception Handlers
# ============================================================================

async def field_decode_exception_handler(request: Request, exc: FieldDecodeError):
    """Answer undecodable base64 form fields with a plain-text 400."""
    logger.info("bad_request", path=request.url.path, field=exc.field)
    return PlainTextResponse(str(exc), status_code=status.HTTP_400_BAD_REQUEST)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle request validation errors."""
    logger.warning(
        "validation_error",
        path=request.url.path,
        errors=jsonable_encoder(exc.errors())
    )
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": jsonable_encoder(exc.errors())}
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions."""
    logger.warning(
        "http_exception",
        path=request.url.path,
        status_code=exc.status_code,
        detail=exc.detail
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail}
    )


async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.error(
        "unexpected_exception",
        path=request.url.path,
        error=str(exc),
        exc_info=True
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"}
    )


# ============================================================================
# Application Factory
# ============================================================================

def create_app(
    settings: Optional[Settings] = None,
    environment: Optional[Environment] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Application settings (cached settings when omitted)
        environment: Pre-loaded deployment environment; loaded on startup when omitted

    Returns:
        Configured application. Database resources are created by the lifespan.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description=(
            "Login server for the Twinsight content dashboard. "
            "Provides account registration, login and session management."
        ),
        docs_url="/docs" if settings.is_development else None,
        redoc_url=None,
        lifespan=lifespan,
        debug=settings.debug,
    )

    app.state.settings = settings
    app.state.environment = environment
    app.state.db_pool = None
    app.state.auth_service = None
    app.state.limiter = limiter

    http_metrics = setup_metrics()[0] if settings.metrics_enabled else None

    # Middleware added last runs first
    if settings.security_headers_enabled:
        app.add_middleware(SecurityHeadersMiddleware, settings=settings)

    if settings.cors_enabled:
        logger.info("configuring_cors", origins=settings.cors_origins)
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=False,
            allow_methods=settings.cors_allow_methods,
            allow_headers=settings.cors_allow_headers,
        )

    app.add_middleware(RequestLoggingMiddleware, metrics=http_metrics)

    app.add_exception_handler(FieldDecodeError, field_decode_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    app.include_router(auth_router)

    # ========================================================================
    # Health and Readiness Endpoints
    # ========================================================================

    @app.get("/health", tags=["Health"], response_model=HealthReport)
    async def health_check() -> HealthReport:
        """
        Health check endpoint.

        Returns basic health status without checking dependencies.
        Use for container health checks.
        """
        return HealthReport(
            status=HealthStatus.HEALTHY,
            service=settings.app_name,
            version=settings.app_version,
            environment=settings.environment
        )

    @app.get("/ready", tags=["Health"], response_model=ReadinessReport)
    async def readiness_check(
        pool: Optional[asyncpg.Pool] = Depends(get_db_pool)
    ) -> JSONResponse:
        """
        Readiness check endpoint.

        Answers 503 until the database pool exists and answers a query.
        """
        database = HealthStatus.UNHEALTHY

        if pool is not None:
            try:
                async with pool.acquire() as conn:
                    await conn.fetchval("SELECT 1")
                database = HealthStatus.HEALTHY
            except (OSError, asyncio.TimeoutError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
                logger.error("database_health_check_failed", error=str(e))

            if http_metrics:
                http_metrics.database_pool_size.set(pool.get_size())
                http_metrics.database_pool_idle.set(pool.get_idle_size())

        ready = database == HealthStatus.HEALTHY
        report = ReadinessReport(
            status="ready" if ready else "not_ready",
            service=settings.app_name,
            version=settings.app_version,
            checks={"database": database}
        )

        return JSONResponse(
            status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
            content=report.model_dump()
        )

    # ========================================================================
    # Metrics Endpoint
    # ========================================================================

    if settings.metrics_enabled:
        metrics_handler = get_metrics_handler()

        @app.get("/metrics", tags=["Monitoring"], response_class=PlainTextResponse)
        async def metrics(
            pool: Optional[asyncpg.Pool] = Depends(get_db_pool)
        ) -> Response:
            """Prometheus metrics endpoint."""
            if pool is not None:
                http_metrics.database_pool_size.set(pool.get_size())
                http_metrics.database_pool_idle.set(pool.get_idle_size())

            return Response(
                content=metrics_handler(),
                media_type=CONTENT_TYPE_LATEST
            )

    return app


app = create_app()


# ============================================================================
# Application Entry Point
# ============================================================================

def main() -> None:
    """
    Run the login server.

    Exits with status 0 after writing an example configuration file, and
    with status 1 when the configuration is unusable or the database cannot
    be reached.
    """
    settings = get_settings()
    configure_logging(
        log_level=settings.log_level,
        json_logs=settings.json_logs,
        service_name=settings.app_name,
        environment=settings.environment,
    )

    try:
        environment = load_environment(settings.config_file)
    except ExampleConfigCreated as e:
        print(str(e))
        sys.exit(0)
    except ConfigurationError as e:
        logger.error("configuration_invalid", error=str(e), missing=e.missing)
        print(str(e), file=sys.stderr)
        sys.exit(1)

    logger.info(
        "starting_server",
        host=settings.host,
        port=settings.port
    )

    server = uvicorn.Server(uvicorn.Config(
        create_app(settings, environment),
        host=settings.host,
        port=settings.port,
        lifespan="on",
        log_level=settings.log_level.lower(),
        access_log=False,
    ))
    try:
        server.run()
    except SystemExit as e:
        # uvicorn exits with its own code when the lifespan startup fails
        logger.error("startup_failed", exit_code=e.code)
        sys.exit(1)

    if not server.started:
        logger.error("startup_failed")
        sys.exit(1)


if __name__ == "__main__":
    main()
