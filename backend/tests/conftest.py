"""
Archetype Backend - Test Configuration (conftest.py)
======================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Every test gets its own Settings and its own app from create_app(),
       so rate-limit counters and the in-memory repository never leak
       between tests.

Fixture Hierarchy:
    settings            test-mode Settings (details on, high rate limit)
    ├── app             FastAPI app built from `settings`
    │   └── client      HTTPX AsyncClient over ASGITransport
    ├── guard           AuthGuard sharing the app's secret
    │   ├── user_token  bearer credential, role "user"
    │   └── admin_token bearer credential, role "admin"
    └── make_client     factory for tests that need different Settings
"""

from contextlib import asynccontextmanager

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from archetype.auth import AuthGuard
from archetype.config import Settings
from archetype.main import create_app

TEST_SECRET = "test-secret-not-for-production"
ALLOWED_ORIGIN = "http://allowed.example"


def build_settings(**overrides) -> Settings:
    values = {
        "environment": "test",
        "jwt_secret": TEST_SECRET,
        "cors_origins": ALLOWED_ORIGIN,
        "rate_limit_max": 1000,
        "rate_limit_window": 60,
        "database_enabled": False,
        "log_level": "WARNING",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


# ══════════════════════════════════════════════════════════════════════════
# Function-Scoped Fixtures (created fresh for each test)
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def settings() -> Settings:
    return build_settings()


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest_asyncio.fixture
async def client(app):
    """
    HTTPX AsyncClient talking to the app in-process.

    Usage:
        async def test_health(client):
            response = await client.get("/health")
            assert response.status_code == 200
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
def make_client():
    """Factory: `async with make_client(environment="production") as (client, app):`."""

    @asynccontextmanager
    async def factory(**overrides):
        application = create_app(build_settings(**overrides))
        transport = ASGITransport(app=application)
        async with AsyncClient(transport=transport, base_url="http://test") as c:
            yield c, application

    return factory


@pytest.fixture
def guard() -> AuthGuard:
    return AuthGuard(secret=TEST_SECRET)


@pytest.fixture
def user_token(guard) -> str:
    return guard.issue({"sub": "user-1", "role": "user"})


@pytest.fixture
def admin_token(guard) -> str:
    return guard.issue({"sub": "admin-1", "roles": ["admin"]})
