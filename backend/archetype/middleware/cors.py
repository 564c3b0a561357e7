"""
Archetype Backend - CORS Stage
================================

What:  Answers CORS pre-flight requests and decorates responses for
       allowed origins.
Why:   Browser clients on other origins (the frontend dev server, admin
       consoles) need Access-Control-* headers to read our responses.
How:   Pre-hook: an OPTIONS request carrying Origin and
       Access-Control-Request-Method is a pre-flight; it is answered here
       with 204 and never reaches the router, auth or the rate limiter.
       decorate(): every response to an allowed origin, error responses
       included, gets Allow-Origin, Allow-Credentials (when enabled) and
       Expose-Headers, so browsers can read 401 and 429 bodies.

Configuration (from settings):
    cors_origins:      comma-separated list; "*" allows any origin
    cors_credentials:  adds Access-Control-Allow-Credentials: true
                       (with credentials, "*" is echoed as the concrete origin)
"""

from typing import Iterable, Optional

from starlette.requests import Request
from starlette.responses import Response

from archetype.context import RequestContext
from archetype.middleware.pipeline import Stage

ALLOW_METHODS = "GET,POST,PUT,PATCH,DELETE,OPTIONS"
ALLOW_HEADERS = "Content-Type, Authorization, X-Requested-With, X-Request-ID"
EXPOSE_HEADERS = "X-Request-ID, X-Response-Time, Retry-After"
PREFLIGHT_MAX_AGE = "600"


class CorsStage(Stage):
    name = "cors"

    def __init__(self, allowed_origins: Iterable[str], allow_credentials: bool = False):
        origins = list(allowed_origins)
        self.allow_all = "*" in origins
        self.allowed_origins = frozenset(o for o in origins if o != "*")
        self.allow_credentials = allow_credentials

    def is_allowed(self, origin: Optional[str]) -> bool:
        if not origin:
            return False
        return self.allow_all or origin in self.allowed_origins

    def _origin_value(self, origin: str) -> str:
        # "*" is not valid alongside credentials; echo the caller's origin instead
        if self.allow_all and not self.allow_credentials:
            return "*"
        return origin

    def _apply_origin_headers(self, response: Response, origin: str) -> None:
        response.headers["Access-Control-Allow-Origin"] = self._origin_value(origin)
        if self.allow_credentials:
            response.headers["Access-Control-Allow-Credentials"] = "true"
        if not (self.allow_all and not self.allow_credentials):
            response.headers.append("Vary", "Origin")

    async def before(self, ctx: RequestContext, request: Request) -> Optional[Response]:
        if request.method != "OPTIONS":
            return None
        origin = request.headers.get("origin")
        if not origin or "access-control-request-method" not in request.headers:
            return None

        response = Response(status_code=204)
        if self.is_allowed(origin):
            self._apply_origin_headers(response, origin)
            response.headers["Access-Control-Allow-Methods"] = ALLOW_METHODS
            response.headers["Access-Control-Allow-Headers"] = ALLOW_HEADERS
            response.headers["Access-Control-Max-Age"] = PREFLIGHT_MAX_AGE
        else:
            # No Allow-Origin header: the browser blocks the actual request
            ctx.logger.info("CORS pre-flight from disallowed origin %s", origin)
        return response

    async def decorate(self, ctx: RequestContext, request: Request, response: Response) -> None:
        origin = request.headers.get("origin")
        if not self.is_allowed(origin):
            return
        if "access-control-allow-origin" in response.headers:
            return  # pre-flight response, already decorated
        self._apply_origin_headers(response, origin)
        response.headers["Access-Control-Expose-Headers"] = EXPOSE_HEADERS
