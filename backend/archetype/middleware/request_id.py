"""
Archetype Backend - Request ID & Timing Stage
===============================================

What:  Assigns a correlation id to each request and measures its duration.
Why:   Every later stage, every log line and every error body (errorId)
       refers to this id, so it must exist before anything else runs.
How:   Reuses a well-formed client-supplied X-Request-ID, otherwise generates
       a UUID4. Publishes it on the context, in the ContextVar used by the
       logging filter, and binds the context's child logger.
When:  First stage of the pipeline (enforced by validate_order()).

Response headers (every response, error responses included):
    X-Request-ID:     the correlation id
    X-Response-Time:  integer milliseconds since the stage started
"""

import logging
import re
import time
import uuid
from typing import Optional

from starlette.requests import Request
from starlette.responses import Response

from archetype.context import RequestContext, request_id_var
from archetype.middleware.pipeline import Stage

REQUEST_ID_HEADER = "X-Request-ID"
RESPONSE_TIME_HEADER = "X-Response-Time"

# Client ids are echoed into logs and headers; accept only plain tokens
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


def new_request_id() -> str:
    return str(uuid.uuid4())


class RequestIdStage(Stage):
    name = "request_id"

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._logger = logger or logging.getLogger("archetype.request")

    async def before(self, ctx: RequestContext, request: Request) -> Optional[Response]:
        ctx.started_at = time.perf_counter()
        incoming = request.headers.get(REQUEST_ID_HEADER)
        ctx.request_id = incoming if incoming and _VALID_REQUEST_ID.match(incoming) else new_request_id()
        request_id_var.set(ctx.request_id)
        request.state.request_id = ctx.request_id
        ctx.bind_logger(self._logger)
        return None

    async def decorate(self, ctx: RequestContext, request: Request, response: Response) -> None:
        if ctx.request_id:
            response.headers[REQUEST_ID_HEADER] = ctx.request_id
        response.headers[RESPONSE_TIME_HEADER] = str(ctx.elapsed_ms())
