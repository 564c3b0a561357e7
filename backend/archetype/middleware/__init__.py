# Middleware package init
"""
Archetype Backend - Middleware Package
========================================

What:  Cross-cutting concerns applied to every request.
Why:   Handlers stay free of auth, throttling, header and error plumbing.

Pipeline (order is validated at startup, see pipeline.validate_order):
    Request → [request_id] → [cors] → [security_headers] → [content_type]
            → [authenticate] → [rate_limit] → [authorize] → [schema]
            → Route Handler
    Response ← decorate() + after() in the same order, ending with [access_log]

    Why this order:
    1. request_id FIRST: every later stage and log line uses the id
    2. cors: pre-flight requests are answered before auth or throttling
    3. security_headers: decorate() only
    4. content_type before schema: 415 is decided before the body is parsed
    5. authenticate before rate_limit: authenticated callers are throttled
       per subject, everyone else per IP (failed logins included)
    6. authorize after rate_limit: raises the held 401 or a 403
    7. schema last: handlers receive only bodies that validated

    Any stage that raises skips the remaining stages and the handler; the
    ErrorFormatter renders the error, which then gets the decorate() headers
    (request id, timing, CORS, security) but not the access log or
    X-RateLimit-* headers.
"""

from archetype.middleware.pipeline import Pipeline, PipelineMiddleware, Stage

__all__ = ["Pipeline", "PipelineMiddleware", "Stage"]
