# Services package init
"""
Archetype Backend - Services Package
======================================

Application services: one class per resource, constructed with its
repository at startup (see main.create_app) and reached by routes through
request.app.state.

    user_service.py: UserService (create / get / list / update / delete)
"""
