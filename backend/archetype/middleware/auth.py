"""
Archetype Backend - Authentication & Authorization Stages
===========================================================

What:  Attaches the caller's Identity to the context and enforces route roles.
How:   Two stages that sandwich the rate limiter:

           authenticate → rate_limit → authorize

       AuthenticateStage verifies the bearer credential. On a protected route
       a verification failure is held on the context (ctx.auth_error) instead
       of aborting, so the rate limiter still counts the request by client IP;
       brute-force attempts against protected routes are throttled too.
       On a public route a valid credential is attached (so the limiter keys
       by subject) and an invalid one is ignored.

       AuthorizeStage raises the held 401, or a 403 when the identity's roles
       do not intersect the route's required roles.

Guarantee:
    A handler behind a protected policy never runs without an identity that
    satisfied its role check.
"""

from typing import Optional

from starlette.requests import Request
from starlette.responses import Response

from archetype.auth import AUTH_HEADER, AuthGuard
from archetype.context import RequestContext
from archetype.exceptions import ClassifiedError
from archetype.middleware.pipeline import Stage
from archetype.middleware.policies import RouteTable


def _policy_for(request: Request, routes: RouteTable):
    # Stored on request.state so authorize/schema don't repeat the lookup
    if not hasattr(request.state, "route_policy"):
        request.state.route_policy = routes.match(request.method, request.url.path)
    return request.state.route_policy


class AuthenticateStage(Stage):
    name = "authenticate"

    def __init__(self, guard: AuthGuard, routes: RouteTable):
        self.guard = guard
        self.routes = routes

    async def before(self, ctx: RequestContext, request: Request) -> Optional[Response]:
        policy = _policy_for(request, self.routes)
        if policy is not None and policy.requires_auth:
            try:
                ctx.identity = self.guard.verify(request.headers)
            except ClassifiedError as exc:
                ctx.auth_error = exc
            return None

        if request.headers.get(AUTH_HEADER):
            try:
                ctx.identity = self.guard.verify(request.headers)
            except ClassifiedError as exc:
                ctx.logger.debug("Ignoring credential on public route: %s", exc.message)
        return None


class AuthorizeStage(Stage):
    name = "authorize"

    def __init__(self, routes: RouteTable):
        self.routes = routes

    async def before(self, ctx: RequestContext, request: Request) -> Optional[Response]:
        policy = _policy_for(request, self.routes)
        if policy is None or not policy.requires_auth:
            return None
        if ctx.auth_error is not None:
            raise ctx.auth_error
        AuthGuard.authorize(ctx.identity, policy.roles)
        return None
