"""
Archetype Backend - Error Taxonomy
====================================

What:  The closed set of failure kinds every stage and handler reports.
Why:   Clients get one stable error contract; the formatter never has to
       guess a status code from an exception's class.
How:   A single exception type, ClassifiedError, tagged with an ErrorKind.
       Each kind maps to exactly one HTTP status. Anything that is not a
       ClassifiedError is coerced to kind=internal by classify().
Who:   Raised by pipeline stages, services and repositories; consumed once by
       the ErrorFormatter (archetype.error_handlers).

Taxonomy:
    validation              → 400  (carries field-level details)
    unauthorized            → 401  (missing / invalid / expired credential)
    forbidden               → 403  (authenticated, insufficient role)
    not_found               → 404  (resource or route does not exist)
    conflict                → 409  (uniqueness or state conflict)
    unsupported_media_type  → 415  (body without a JSON content type)
    rate_limited            → 429  (always carries retry_after)
    internal                → 500  (message never leaves the server)

Design Decision:
    A tag instead of a class hierarchy. The formatter switches on `kind`,
    so adding a kind means adding one enum member and one status entry.
"""

from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    UNSUPPORTED_MEDIA_TYPE = "unsupported_media_type"
    RATE_LIMITED = "rate_limited"
    INTERNAL = "internal"


STATUS_CODES: Dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.UNSUPPORTED_MEDIA_TYPE: 415,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.INTERNAL: 500,
}

DEFAULT_MESSAGES: Dict[ErrorKind, str] = {
    ErrorKind.VALIDATION: "Request validation failed",
    ErrorKind.UNAUTHORIZED: "Unauthorized access",
    ErrorKind.FORBIDDEN: "Insufficient permissions",
    ErrorKind.NOT_FOUND: "Resource not found",
    ErrorKind.CONFLICT: "Resource conflict",
    ErrorKind.UNSUPPORTED_MEDIA_TYPE: "Content-Type must be application/json",
    ErrorKind.RATE_LIMITED: "Rate limit exceeded",
    ErrorKind.INTERNAL: "Internal Server Error",
}


class ClassifiedError(Exception):
    """
    A failure tagged with its kind.

    Attributes:
        kind:        One of ErrorKind
        message:     Human-readable description (hidden from clients for 5xx)
        details:     Optional structured payload, e.g. a list of field errors
        retry_after: Seconds until retry is allowed (rate_limited only)
        cause:       Original exception when an unclassified error was coerced
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: Optional[str] = None,
        details: Any = None,
        retry_after: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ):
        self.kind = ErrorKind(kind)
        self.message = message or DEFAULT_MESSAGES[self.kind]
        self.details = details
        self.retry_after = retry_after
        self.cause = cause
        if self.kind is ErrorKind.RATE_LIMITED and retry_after is None:
            raise ValueError("rate_limited errors must carry retry_after")
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return STATUS_CODES[self.kind]

    def __repr__(self) -> str:
        return f"ClassifiedError(kind={self.kind.value!r}, message={self.message!r})"


# ── Constructors ──────────────────────────────────────────────────────────
# Thin helpers so call sites read like the failure they report.

def validation_error(
    message: str = DEFAULT_MESSAGES[ErrorKind.VALIDATION],
    details: Optional[List[Dict[str, Any]]] = None,
) -> ClassifiedError:
    return ClassifiedError(ErrorKind.VALIDATION, message, details=details)


def field_error(field: str, message: str, value: Any = None) -> ClassifiedError:
    """Validation failure for a single field."""
    detail: Dict[str, Any] = {"field": field, "message": message}
    if value is not None:
        detail["value"] = value
    return ClassifiedError(ErrorKind.VALIDATION, message, details=[detail])


def unauthorized(message: str = DEFAULT_MESSAGES[ErrorKind.UNAUTHORIZED]) -> ClassifiedError:
    return ClassifiedError(ErrorKind.UNAUTHORIZED, message)


def forbidden(message: str = DEFAULT_MESSAGES[ErrorKind.FORBIDDEN]) -> ClassifiedError:
    return ClassifiedError(ErrorKind.FORBIDDEN, message)


def not_found(resource: str = "resource", resource_id: Any = None) -> ClassifiedError:
    message = f"The requested {resource} was not found"
    if resource_id is not None:
        message = f"{resource} with ID '{resource_id}' was not found"
    return ClassifiedError(ErrorKind.NOT_FOUND, message)


def conflict(message: str = DEFAULT_MESSAGES[ErrorKind.CONFLICT]) -> ClassifiedError:
    return ClassifiedError(ErrorKind.CONFLICT, message)


def unsupported_media_type(content_type: Optional[str]) -> ClassifiedError:
    received = content_type or "none"
    return ClassifiedError(
        ErrorKind.UNSUPPORTED_MEDIA_TYPE,
        f"Unsupported Content-Type '{received}'. Expected application/json",
    )


def rate_limited(retry_after: int) -> ClassifiedError:
    return ClassifiedError(
        ErrorKind.RATE_LIMITED,
        DEFAULT_MESSAGES[ErrorKind.RATE_LIMITED],
        retry_after=retry_after,
    )


def internal(message: str = DEFAULT_MESSAGES[ErrorKind.INTERNAL], cause=None) -> ClassifiedError:
    return ClassifiedError(ErrorKind.INTERNAL, message, cause=cause)


def classify(exc: BaseException) -> ClassifiedError:
    """Return `exc` if already classified, else wrap it as kind=internal."""
    if isinstance(exc, ClassifiedError):
        return exc
    return ClassifiedError(ErrorKind.INTERNAL, str(exc) or type(exc).__name__, cause=exc)
