"""
Archetype Backend - Security Headers Stage
============================================

What:  Adds security-related HTTP headers to every response that passes the pipeline.
How:   decorate() hook, so error responses carry them too. API paths
       additionally get no-store caching so that
       user data never lands in shared or browser caches.

Headers:
    X-Content-Type-Options: nosniff
    X-Frame-Options:        DENY
    Referrer-Policy:        no-referrer
    X-DNS-Prefetch-Control: off
    Cache-Control:          no-cache, no-store, must-revalidate   (API prefix only)
"""

from starlette.requests import Request
from starlette.responses import Response

from archetype.context import RequestContext
from archetype.middleware.pipeline import Stage

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "X-DNS-Prefetch-Control": "off",
}
NO_STORE = "no-cache, no-store, must-revalidate"


class SecurityHeadersStage(Stage):
    name = "security_headers"

    def __init__(self, api_prefix: str = "/api"):
        self.api_prefix = api_prefix.rstrip("/") or "/"

    def is_api_path(self, path: str) -> bool:
        return path == self.api_prefix or path.startswith(self.api_prefix + "/")

    async def decorate(self, ctx: RequestContext, request: Request, response: Response) -> None:
        for header, value in SECURITY_HEADERS.items():
            response.headers[header] = value
        if self.is_api_path(ctx.path):
            response.headers["Cache-Control"] = NO_STORE
