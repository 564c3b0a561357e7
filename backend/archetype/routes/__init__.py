# Routes package init
"""
Archetype Backend - API Routes Package
========================================

What:  HTTP route handlers that accept requests and return responses.
How:   Each route module handles one resource and, where its routes need
       auth or body validation, publishes a POLICIES list for the pipeline.

Route Inventory:
    - users.py:   /api/v1/users CRUD (see module docstring for roles)
    - health.py:  GET /health, GET /ready

Design Principle:
    Routes are THIN: extract input, call the service, return the entity.
    Business logic belongs in services, not routes.
"""
