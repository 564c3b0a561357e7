"""
Archetype Backend - Repositories
==================================

Persistence port for the user resource and its two adapters:

    UserRepository          abstract contract the service depends on
    InMemoryUserRepository  DATABASE_ENABLED=false (dev, tests)
    SqlUserRepository       async SQLAlchemy (PostgreSQL/asyncpg, SQLite in tests)
"""

from archetype.repositories.user_repository import (
    InMemoryUserRepository,
    SqlUserRepository,
    UserRepository,
)

__all__ = ["InMemoryUserRepository", "SqlUserRepository", "UserRepository"]
