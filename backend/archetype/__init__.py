"""
Archetype Backend - Application Package Initializer
=====================================================

What: Marks the `archetype` directory as a Python package.
Who:  Used by uvicorn (`archetype.main:app`), Alembic and pytest.

Architecture Note:
    The service follows a layered layout:

    ┌─────────────────────────────────────┐
    │   Middleware pipeline (stages)      │  ← cross-cutting concerns, errors
    ├─────────────────────────────────────┤
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │     Services (Application logic)    │  ← use cases, conflict checks
    ├─────────────────────────────────────┤
    │   Domain entities & repositories    │  ← validation rules, persistence port
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← async SQLAlchemy sessions
    └─────────────────────────────────────┘

    Each layer only talks to the one below it, so services can be tested with
    an in-memory repository and routes can be tested without a database.
"""

__version__ = "1.0.0"
