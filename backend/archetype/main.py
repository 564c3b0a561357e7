"""
Archetype Backend - FastAPI Application Factory
=================================================

What:  Creates and configures the FastAPI application instance.
Why:   Centralizes configuration, pipeline assembly, route mounting and
       lifecycle management in one place.
How:   Factory pattern: create_app(settings) returns a configured app.
Who:   uvicorn (uvicorn archetype.main:app) and the test suite.
When:  Once at server startup; the returned app handles all requests.

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                      FastAPI App                         │
    │                                                          │
    │  PipelineMiddleware (single middleware, ordered stages): │
    │   request_id → cors → security_headers → content_type    │
    │   → authenticate → rate_limit → authorize → schema       │
    │   → access_log                                           │
    │                                                          │
    │  Routes:                                                 │
    │   /api/v1/users (CRUD)   /health   /ready                │
    │                                                          │
    │  Errors: every failure → ErrorFormatter → one JSON shape │
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:
    1. Configure logging (request id on every line)
    2. Validate configuration (logged, not fatal)
    3. Create tables / check the database when enabled
    Shutdown:
    1. Dispose the database engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI

from archetype import __version__
from archetype.auth import AuthGuard
from archetype.config import Settings, get_settings
from archetype.context import RequestIdLogFilter
from archetype.database import Database
from archetype.error_handlers import ErrorFormatter, register_exception_handlers
from archetype.middleware import Pipeline, PipelineMiddleware
from archetype.middleware.auth import AuthenticateStage, AuthorizeStage
from archetype.middleware.content_type import ContentTypeStage
from archetype.middleware.cors import CorsStage
from archetype.middleware.logging import AccessLogStage
from archetype.middleware.policies import RouteTable
from archetype.middleware.rate_limit import RateLimiter, RateLimitStage
from archetype.middleware.request_id import RequestIdStage
from archetype.middleware.schema import SchemaValidationStage
from archetype.middleware.security_headers import SecurityHeadersStage
from archetype.repositories.user_repository import (
    InMemoryUserRepository,
    SqlUserRepository,
    UserRepository,
)
from archetype.routes import health, users
from archetype.services.user_service import UserService

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Structured Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(settings: Settings) -> None:
    """
    Configure logging for the entire application.

    Format: %(asctime)s [%(levelname)s] %(name)s [%(request_id)s] %(message)s

    The request id comes from RequestIdLogFilter, which reads the context
    variable set by the request_id stage ("-" outside a request).
    """
    handler = logging.StreamHandler(sys.stdout)  # Docker captures stdout
    handler.addFilter(RequestIdLogFilter())

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s [%(request_id)s] %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[handler],
        force=True,
    )

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings: Settings = app.state.settings
    database: Optional[Database] = app.state.database

    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging(settings)
    logger.info("=" * 60)
    logger.info("Archetype Backend %s starting (%s)", __version__, settings.environment)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Not fatal: the server still answers health checks
        logger.error("Configuration error: %s", str(e))
        logger.error("Fix the configuration and restart the server.")

    if database is not None:
        try:
            await database.create_all()
            logger.info("Database ready")
        except Exception as e:
            logger.error("Database unavailable at startup: %s", str(e))
    else:
        logger.info("Database disabled; using in-memory user repository")

    logger.info("Pipeline: %s", " → ".join(app.state.pipeline.names))
    logger.info("Server ready at http://%s:%d", settings.host, settings.port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("Archetype Backend shutting down...")
    if database is not None:
        await database.dispose()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Pipeline Assembly
# ══════════════════════════════════════════════════════════════════════════

def build_pipeline(
    settings: Settings,
    routes: RouteTable,
    guard: AuthGuard,
    limiter: Optional[RateLimiter],
    formatter: ErrorFormatter,
) -> Pipeline:
    """
    Assemble the stage list in its fixed order.

    The rate limit stage is left out when rate limiting is disabled
    (limiter is None). Pipeline() re-checks the order and raises ValueError
    on a misconfiguration, so a bad assembly fails at startup.
    """
    stages = [
        RequestIdStage(),
        CorsStage(settings.cors_origins_list, allow_credentials=settings.cors_credentials),
        SecurityHeadersStage(api_prefix=settings.api_prefix),
        ContentTypeStage(),
        AuthenticateStage(guard, routes),
    ]
    if limiter is not None:
        stages.append(RateLimitStage(limiter))
    stages += [
        AuthorizeStage(routes),
        SchemaValidationStage(routes),
        AccessLogStage(),
    ]
    return Pipeline(stages, formatter)


def build_repository(settings: Settings, database: Optional[Database]) -> UserRepository:
    if database is not None:
        return SqlUserRepository(database)
    return InMemoryUserRepository()


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Every collaborator (guard, limiter, formatter, repository, service) is
    built here from `settings` and kept on app.state, so tests get a fresh,
    isolated app per call.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Archetype API",
        description="CRUD service archetype: validated request pipeline and uniform error contract.",
        version=__version__,
        # API docs are a development aid; not served in production
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None if settings.is_production else "/redoc",
        openapi_url=None if settings.is_production else "/openapi.json",
        lifespan=lifespan,
    )

    guard = AuthGuard.from_settings(settings)
    limiter = (
        RateLimiter(
            max_per_window=settings.rate_limit_max,
            window_seconds=settings.rate_limit_window,
            allow_list=settings.rate_limit_allow_list_set,
            max_keys=settings.rate_limit_max_keys,
        )
        if settings.rate_limit_enabled
        else None
    )
    formatter = ErrorFormatter.from_settings(settings)
    routes = RouteTable(users.POLICIES)
    database = Database.from_settings(settings) if settings.database_enabled else None
    pipeline = build_pipeline(settings, routes, guard, limiter, formatter)

    app.state.settings = settings
    app.state.guard = guard
    app.state.limiter = limiter
    app.state.formatter = formatter
    app.state.routes = routes
    app.state.database = database
    app.state.pipeline = pipeline
    app.state.user_service = UserService(build_repository(settings, database))

    # ── Register Middleware ───────────────────────────────────────────────
    # One middleware; ordering lives inside the pipeline
    app.add_middleware(PipelineMiddleware, pipeline=pipeline)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(users.router)
    app.include_router(health.router)

    return app


# ── Application Instance ─────────────────────────────────────────────────
# uvicorn expects `archetype.main:app` to be importable
app = create_app()
