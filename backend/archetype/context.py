"""
Archetype Backend - Request Lifecycle Context
===============================================

What:  Per-request mutable state threaded through every pipeline stage.
Why:   Stages need to share the request id, timing, the resolved identity
       and a bound logger without reaching for module globals.
How:   The pipeline middleware creates one RequestContext per request and
       stores it on request.state.context; stages mutate it in order.
Who:   Created by PipelineMiddleware, filled in by RequestIdStage and the
       auth stages, read by the error formatter and handlers.
When:  Lives from the first byte of the request until the response is sent.

Request id in logs:
    The id is also published in a ContextVar. RequestIdLogFilter copies it
    into every LogRecord, so service and repository log lines carry it
    even though they never see the context object.
"""

import logging
import time
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from starlette.requests import Request

if TYPE_CHECKING:
    from archetype.auth import Identity
    from archetype.exceptions import ClassifiedError

# Coroutine-local: concurrent requests on one event loop each see their own id
request_id_var: ContextVar[str] = ContextVar("request_id", default="-")


class RequestIdLogFilter(logging.Filter):
    """Adds `request_id` to records that were not logged through a bound adapter."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = request_id_var.get()
        return True


def client_ip_of(request: Request) -> str:
    # request.client is None under some test transports
    return request.client.host if request.client else "unknown"


@dataclass
class RequestContext:
    """Lightweight per-request state container mutated by pipeline stages."""

    method: str
    path: str
    client_ip: str
    user_agent: str
    request_id: str = ""
    started_at: float = field(default_factory=time.perf_counter)
    started_wall: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    identity: Optional["Identity"] = None
    # Verification failure held back by AuthenticateStage until AuthorizeStage
    auth_error: Optional["ClassifiedError"] = None
    short_circuited_by: Optional[str] = None
    rate_limit: Any = None
    logger: logging.LoggerAdapter = field(
        default_factory=lambda: logging.LoggerAdapter(logging.getLogger("archetype.request"), {})
    )

    @classmethod
    def from_request(cls, request: Request) -> "RequestContext":
        return cls(
            method=request.method,
            path=request.url.path,
            client_ip=client_ip_of(request),
            user_agent=request.headers.get("user-agent", ""),
        )

    def bind_logger(self, base: logging.Logger) -> None:
        """Bind a child logger carrying the request's correlation fields."""
        self.logger = logging.LoggerAdapter(
            base,
            {
                "request_id": self.request_id,
                "method": self.method,
                "url": self.path,
                "client_ip": self.client_ip,
                "user_agent": self.user_agent,
            },
        )

    def elapsed_ms(self) -> int:
        return int((time.perf_counter() - self.started_at) * 1000)


def get_context(request: Request) -> Optional[RequestContext]:
    return getattr(request.state, "context", None)
