"""
Archetype Backend - Request Pipeline
======================================

What:  Runs an explicit, ordered list of named stages around the route handler.
Why:   Ordering between cross-cutting concerns is a correctness property
       (the request id must exist before anything logs, content type must be
       checked before the body is parsed, authentication must run before the
       rate limiter keys by subject). Starlette's add_middleware() stacks in
       reverse registration order across files; one list, validated once at
       startup, makes the order impossible to get wrong by accident.
How:   Pipeline.run() is a fixed interpreter loop:

           for stage in stages:           pre-hooks, in order
               response = stage.before()  → None: continue
                                          → Response: short-circuit
                                          → raise: abort, go to formatter
           response = handler()           only if nothing short-circuited
           for stage in stages:           post-hooks, in order
               stage.decorate(response)   standard headers
               stage.after(response)      rate-limit headers, logging

       Errors (from a stage or the handler) are rendered by the
       ErrorFormatter. The error response still gets every stage's
       decorate() (request id, timing, CORS, security headers) but no
       after(), so it is neither counted in the access log nor given
       X-RateLimit-* headers.
Who:   PipelineMiddleware adapts the pipeline to Starlette; create_app()
       builds the stage list.
"""

import logging
from typing import Awaitable, Callable, Iterable, List, Optional, Sequence, Tuple

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from archetype.context import RequestContext

logger = logging.getLogger(__name__)

Handler = Callable[[RequestContext, Request], Awaitable[Response]]

# (earlier, later): when both stages are registered, `earlier` must come first
ORDER_CONSTRAINTS: Tuple[Tuple[str, str], ...] = (
    ("content_type", "schema"),
    ("authenticate", "rate_limit"),
    ("authenticate", "authorize"),
    ("authorize", "schema"),
)
FIRST_STAGE = "request_id"


class Stage:
    """
    Base class for pipeline stages.

    before():   return None to pass through, a Response to short-circuit, or
                raise (ideally a ClassifiedError) to abort the request.
    decorate(): adds headers every reply must carry; also applied to error
                responses rendered by the formatter.
    after():    post-hook for successful and short-circuited responses only;
                may add headers or log, must not change body/status.
    """

    name = "stage"

    async def before(self, ctx: RequestContext, request: Request) -> Optional[Response]:
        return None

    async def decorate(self, ctx: RequestContext, request: Request, response: Response) -> None:
        return None

    async def after(self, ctx: RequestContext, request: Request, response: Response) -> None:
        return None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r}>"


def validate_order(names: Sequence[str]) -> None:
    """Raise ValueError when the stage list violates an ordering invariant."""
    if len(set(names)) != len(names):
        raise ValueError(f"Duplicate pipeline stage names: {list(names)}")
    if names and names[0] != FIRST_STAGE:
        raise ValueError(f"'{FIRST_STAGE}' must be the first pipeline stage, got {names[0]!r}")
    if FIRST_STAGE in names[1:]:
        raise ValueError(f"'{FIRST_STAGE}' must be the first pipeline stage")
    position = {name: i for i, name in enumerate(names)}
    for earlier, later in ORDER_CONSTRAINTS:
        if earlier in position and later in position and position[earlier] > position[later]:
            raise ValueError(f"Pipeline stage '{earlier}' must run before '{later}'")


class Pipeline:
    """An immutable, validated sequence of stages plus the error formatter."""

    def __init__(self, stages: Iterable[Stage], formatter):
        self.stages: Tuple[Stage, ...] = tuple(stages)
        validate_order([s.name for s in self.stages])
        self.formatter = formatter

    @property
    def names(self) -> List[str]:
        return [s.name for s in self.stages]

    async def run(self, ctx: RequestContext, request: Request, handler: Handler) -> Response:
        try:
            response = await self._run_pre_and_handler(ctx, request, handler)
        except Exception as exc:
            response = self.formatter.render(exc, ctx, request)
            await self._post(ctx, request, response, hooks=("decorate",))
            return response

        await self._post(ctx, request, response, hooks=("decorate", "after"))
        return response

    async def _post(
        self, ctx: RequestContext, request: Request, response: Response, hooks: Sequence[str]
    ) -> None:
        for stage in self.stages:
            for hook in hooks:
                try:
                    await getattr(stage, hook)(ctx, request, response)
                except Exception:
                    # Post-hooks only add headers/logs; a broken one must not
                    # turn a good response into an error.
                    ctx.logger.warning("Post-hook %s.%s failed", stage.name, hook, exc_info=True)

    async def _run_pre_and_handler(
        self, ctx: RequestContext, request: Request, handler: Handler
    ) -> Response:
        for stage in self.stages:
            response = await stage.before(ctx, request)
            if response is not None:
                ctx.short_circuited_by = stage.name
                ctx.logger.debug("Short-circuited by %s", stage.name)
                return response
        return await handler(ctx, request)


class PipelineMiddleware(BaseHTTPMiddleware):
    """
    Starlette adapter: one RequestContext per request, then Pipeline.run().

    The terminal handler is the rest of the ASGI app (router, dependencies,
    endpoint). Exceptions escaping it, including ClassifiedErrors raised by
    endpoints, surface from call_next() and are rendered by the formatter.
    """

    def __init__(self, app: ASGIApp, pipeline: Pipeline):
        super().__init__(app)
        self.pipeline = pipeline

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        ctx = RequestContext.from_request(request)
        request.state.context = ctx

        async def handler(_ctx: RequestContext, req: Request) -> Response:
            return await call_next(req)

        return await self.pipeline.run(ctx, request, handler)
