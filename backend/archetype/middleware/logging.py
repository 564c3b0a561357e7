"""
Archetype Backend - Access Log Stage
======================================

What:  One structured log line per completed request.
Why:   Enables monitoring, debugging and latency tracking per request id.
How:   Post-hook, registered last so the line reflects the final headers.
       Error responses rendered by the formatter are logged there instead.

Log line:
    "POST /api/v1/users 201 12ms [<request id>] from 10.0.0.7"
    extra: request_id, method, path, status, duration_ms, client_ip

What we log vs what we DON'T log (privacy):
    ✅ method, path, status, duration, IP, user-agent, request ID
    ❌ request bodies, Authorization / Cookie headers
"""

import logging
from typing import Iterable

from starlette.requests import Request
from starlette.responses import Response

from archetype.context import RequestContext
from archetype.middleware.pipeline import Stage

access_logger = logging.getLogger("archetype.access")


def level_for_status(status: int) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    return logging.INFO


class AccessLogStage(Stage):
    name = "access_log"

    def __init__(self, quiet_paths: Iterable[str] = ("/health", "/ready")):
        # Health checks hit these every few seconds; log them at DEBUG only
        self.quiet_paths = frozenset(quiet_paths)

    async def after(self, ctx: RequestContext, request: Request, response: Response) -> None:
        status = response.status_code
        duration_ms = ctx.elapsed_ms()
        level = level_for_status(status)
        if ctx.path in self.quiet_paths and level == logging.INFO:
            level = logging.DEBUG

        access_logger.log(
            level,
            "%s %s %d %dms [%s] from %s",
            ctx.method,
            ctx.path,
            status,
            duration_ms,
            ctx.request_id,
            ctx.client_ip,
            extra={
                "request_id": ctx.request_id,
                "method": ctx.method,
                "path": ctx.path,
                "status": status,
                "duration_ms": duration_ms,
                "client_ip": ctx.client_ip,
                "user_agent": ctx.user_agent,
            },
        )
