"""
Archetype Backend - Content-Type Enforcement Stage
====================================================

What:  Rejects write requests whose body is not JSON with 415.
Why:   Schema validation parses the body as JSON; checking the declared media
       type first gives clients a precise error instead of a parse failure.
When:  Before the schema stage (enforced by validate_order()).

Rule:
    POST / PUT / PATCH with a body (Content-Length > 0, or chunked transfer)
    must declare application/json or a structured-syntax variant such as
    application/merge-patch+json. Parameters (charset) are ignored.
    Bodiless writes pass through untouched.
"""

from typing import Optional

from starlette.requests import Request
from starlette.responses import Response

from archetype.context import RequestContext
from archetype.exceptions import unsupported_media_type
from archetype.middleware.pipeline import Stage

BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})


def is_json_media_type(content_type: Optional[str]) -> bool:
    if not content_type:
        return False
    media_type = content_type.split(";", 1)[0].strip().lower()
    if media_type == "application/json":
        return True
    return media_type.startswith("application/") and media_type.endswith("+json")


def has_body(request: Request) -> bool:
    if "transfer-encoding" in request.headers:
        return True
    try:
        return int(request.headers.get("content-length", "0")) > 0
    except ValueError:
        return True


class ContentTypeStage(Stage):
    name = "content_type"

    async def before(self, ctx: RequestContext, request: Request) -> Optional[Response]:
        if request.method not in BODY_METHODS or not has_body(request):
            return None
        content_type = request.headers.get("content-type")
        if not is_json_media_type(content_type):
            raise unsupported_media_type(content_type)
        return None
