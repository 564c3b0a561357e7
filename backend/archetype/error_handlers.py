"""
Archetype Backend - Error/Response Formatter
==============================================

What:  Turns any failure into the single client-facing error contract.
Why:   Clients parse one shape for every endpoint and every kind; operators
       correlate a response with server logs through errorId.
How:   ErrorFormatter.render() classifies the failure (archetype.exceptions),
       logs it, and builds the JSON body. PipelineMiddleware calls it for
       anything raised by a stage or escaping the app; the FastAPI handlers
       registered below re-raise the router's no-match path and
       FastAPI's own request validation as ClassifiedErrors.

Wire shape:
    {
      "error": {
        "message":    "...",
        "statusCode": 404,
        "timestamp":  "2024-01-15T12:00:00.000Z",
        "errorId":    "<request id>",
        "path":       "/api/v1/users/7",
        "retryAfter": 30,          # rate_limited only
        "details":    ...          # non-production only
      }
    }

Security:
    Status >= 500 always answers "Internal Server Error". The real message
    and stack trace are logged server-side. Only outside production is a
    `details` object appended: the error's structured details when it has
    them (validation field list), otherwise {name, message, stack}.
"""

import logging
import traceback
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from archetype.context import RequestContext, request_id_var
from archetype.exceptions import (
    ClassifiedError,
    ErrorKind,
    STATUS_CODES,
    classify,
    validation_error,
)
from archetype.middleware.schema import format_pydantic_errors

logger = logging.getLogger(__name__)

INTERNAL_MESSAGE = "Internal Server Error"
SENSITIVE_HEADERS = frozenset({"authorization", "cookie", "x-api-key"})

_KIND_BY_STATUS = {status: kind for kind, status in STATUS_CODES.items()}


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def sanitize_headers(headers: Mapping[str, str]) -> Dict[str, str]:
    """Copy of `headers` safe to log: credentials replaced by [REDACTED]."""
    return {
        name: "[REDACTED]" if name.lower() in SENSITIVE_HEADERS else value
        for name, value in headers.items()
    }


def _debug_details(error: ClassifiedError) -> Dict[str, Any]:
    source = error.cause if error.cause is not None else error
    return {
        "name": type(source).__name__,
        "message": str(source),
        "stack": "".join(traceback.format_exception(type(source), source, source.__traceback__)),
    }


class ErrorFormatter:
    """Classifies failures and renders Error Responses."""

    def __init__(self, production: bool):
        self.production = production

    @classmethod
    def from_settings(cls, settings) -> "ErrorFormatter":
        return cls(production=settings.is_production)

    def build_body(self, error: ClassifiedError, error_id: str, path: Optional[str]) -> Dict[str, Any]:
        status = error.status_code
        body: Dict[str, Any] = {
            "message": INTERNAL_MESSAGE if status >= 500 else error.message,
            "statusCode": status,
            "timestamp": utc_timestamp(),
            "errorId": error_id,
        }
        if path is not None:
            body["path"] = path
        if error.kind is ErrorKind.RATE_LIMITED:
            body["retryAfter"] = error.retry_after
        if not self.production:
            body["details"] = error.details if error.details is not None else _debug_details(error)
        return {"error": body}

    def render(
        self,
        exc: BaseException,
        ctx: Optional[RequestContext] = None,
        request: Optional[Request] = None,
    ) -> JSONResponse:
        error = classify(exc)
        error_id = ctx.request_id if ctx is not None and ctx.request_id else request_id_var.get()
        path = ctx.path if ctx is not None else (request.url.path if request is not None else None)

        self._log(error, ctx, request)

        headers = {"X-Request-ID": error_id}
        if error.kind is ErrorKind.RATE_LIMITED:
            headers["Retry-After"] = str(error.retry_after)
        if error.kind is ErrorKind.UNAUTHORIZED:
            headers["WWW-Authenticate"] = "Bearer"
        return JSONResponse(
            status_code=error.status_code,
            content=self.build_body(error, error_id, path),
            headers=headers,
        )

    def _log(self, error: ClassifiedError, ctx: Optional[RequestContext], request: Optional[Request]) -> None:
        log = ctx.logger if ctx is not None else logger
        if error.status_code >= 500:
            source = error.cause if error.cause is not None else error
            log.error(
                "Request error: %s | headers=%s",
                error.message,
                sanitize_headers(request.headers) if request is not None else {},
                exc_info=(type(source), source, source.__traceback__),
            )
        else:
            log.warning("%s (%d): %s", error.kind.value, error.status_code, error.message)


def route_not_found(request: Request) -> ClassifiedError:
    return ClassifiedError(ErrorKind.NOT_FOUND, f"Route {request.method} {request.url.path} not found")


def register_exception_handlers(app: FastAPI) -> None:
    """
    Re-raise the app's own error paths as ClassifiedErrors.

    The raised error leaves the app and reaches PipelineMiddleware, which
    hands it to the formatter, so handler failures, the router's no-match
    path and stage failures all share one code path (decorate() headers
    only, no access log).

    StarletteHTTPException: the router's no-match path (404, and 405 for a
        known path with an unknown method, both reported as a missing route)
        plus any HTTPException raised by a handler.
    RequestValidationError: FastAPI's query/path/body validation.
    """

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        no_match = exc.status_code == 404 and request.scope.get("endpoint") is None
        if no_match or exc.status_code == 405:
            raise route_not_found(request)
        kind = _KIND_BY_STATUS.get(exc.status_code, ErrorKind.INTERNAL)
        raise ClassifiedError(kind, str(exc.detail) if exc.detail else None)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        raise validation_error(details=format_pydantic_errors(list(exc.errors()), skip_prefix=("body",)))
