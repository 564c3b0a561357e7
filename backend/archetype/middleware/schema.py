"""
Archetype Backend - Schema Validation Stage
=============================================

What:  Validates JSON request bodies against the route's pydantic model.
Why:   Produces one validation error listing every bad field, in the
       same shape for every endpoint, before the handler is invoked.
How:   Looks up the RoutePolicy for the request; if it declares a `body`
       model, the body is read (Starlette caches it for the downstream app),
       decoded and validated. Failures become a `validation` ClassifiedError
       whose details are [{"field", "message"}, ...].
When:  Last pre-hook; runs after content-type enforcement, so the body is
       already known to be declared as JSON.
"""

import json
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError
from starlette.requests import Request
from starlette.responses import Response

from archetype.context import RequestContext
from archetype.exceptions import validation_error
from archetype.middleware.pipeline import Stage
from archetype.middleware.policies import RouteTable


def format_pydantic_errors(errors: List[Dict[str, Any]], skip_prefix: tuple = ()) -> List[Dict[str, Any]]:
    """Turn pydantic's error list into [{"field": "a.b", "message": ...}]."""
    formatted = []
    for error in errors:
        loc = tuple(error.get("loc", ()))
        if skip_prefix and loc[: len(skip_prefix)] == skip_prefix:
            loc = loc[len(skip_prefix):]
        formatted.append({
            "field": ".".join(str(part) for part in loc) or "body",
            "message": error.get("msg", "Invalid value"),
        })
    return formatted


class SchemaValidationStage(Stage):
    name = "schema"

    def __init__(self, routes: RouteTable):
        self.routes = routes

    async def before(self, ctx: RequestContext, request: Request) -> Optional[Response]:
        policy = getattr(request.state, "route_policy", None)
        if policy is None:
            policy = self.routes.match(request.method, request.url.path)
        if policy is None or policy.body is None:
            return None

        raw = await request.body()
        if not raw.strip():
            raise validation_error(
                details=[{"field": "body", "message": "Request body is required"}],
            )
        try:
            payload = json.loads(raw)
        except ValueError:
            raise validation_error(
                "Request body is not valid JSON",
                details=[{"field": "body", "message": "Malformed JSON"}],
            )
        try:
            request.state.validated_body = policy.body.model_validate(payload)
        except PydanticValidationError as exc:
            raise validation_error(details=format_pydantic_errors(exc.errors()))
        return None
