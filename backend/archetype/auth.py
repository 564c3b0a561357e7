"""
Archetype Backend - Auth Guard
================================

What:  Bearer-token verification, role authorization and token issuance.
Why:   Every protected route needs the same credential rules, and the two
       failure causes (expired vs invalid) must be told apart in the message
       while sharing the 401 status.
How:   HS256 JWTs via python-jose. verify() extracts and decodes the token
       and builds an Identity; authorize() is a set intersection on roles;
       issue() signs a time-bounded payload.
Who:   AuthenticateStage / AuthorizeStage in the pipeline, and handlers that
       read the identity through the current_identity dependency.

Credential header:
    Authorization: Bearer <token>
    Exactly two space-separated tokens, scheme "Bearer". Anything else is
    treated as a missing credential.

The guard is stateless: no revocation list, no persistence of issued tokens.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional, Union

from fastapi import Request
from jose import ExpiredSignatureError, JWTError, jwt

from archetype.context import get_context
from archetype.exceptions import forbidden, unauthorized

AUTH_HEADER = "authorization"
AUTH_SCHEME = "Bearer"

MSG_TOKEN_REQUIRED = "Access token required"
MSG_TOKEN_EXPIRED = "Token expired"
MSG_TOKEN_INVALID = "Invalid token"


@dataclass(frozen=True)
class Identity:
    """Decoded credential payload attached to the request context."""

    subject: str
    roles: FrozenSet[str] = frozenset()
    claims: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @classmethod
    def from_claims(cls, claims: Mapping[str, Any]) -> "Identity":
        subject = claims.get("sub")
        if subject is None or subject == "":
            raise unauthorized(MSG_TOKEN_INVALID)
        roles = claims.get("roles")
        if roles is None:
            roles = claims.get("role") or []
        return cls(subject=str(subject), roles=_role_names(roles), claims=dict(claims))


def _role_names(value: Any) -> FrozenSet[str]:
    """A single role name or a list of them; any other shape is an invalid token."""
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        raise unauthorized(MSG_TOKEN_INVALID)
    if not all(isinstance(role, (str, int)) and not isinstance(role, bool) for role in value):
        raise unauthorized(MSG_TOKEN_INVALID)
    return frozenset(str(role) for role in value)


def extract_token(header_value: Optional[str]) -> str:
    """
    Pull the token out of an Authorization header value.

    Raises:
        ClassifiedError(unauthorized): header absent or not "Bearer <token>"
    """
    if not header_value:
        raise unauthorized(MSG_TOKEN_REQUIRED)
    parts = header_value.split(" ")
    if len(parts) != 2 or parts[0] != AUTH_SCHEME or not parts[1]:
        raise unauthorized(MSG_TOKEN_REQUIRED)
    return parts[1]


class AuthGuard:
    """
    Verifies and issues signed credentials.

    Configuration is read once from Settings (secret, algorithm, default TTL)
    and never changes, so one instance is shared by every request.
    """

    def __init__(self, secret: str, algorithm: str = "HS256", default_ttl: int = 86_400):
        if not secret:
            raise ValueError("AuthGuard requires a signing secret")
        self._secret = secret
        self._algorithm = algorithm
        self._default_ttl = default_ttl

    @classmethod
    def from_settings(cls, settings) -> "AuthGuard":
        return cls(
            secret=settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
            default_ttl=settings.jwt_ttl_seconds,
        )

    def decode(self, token: str) -> Identity:
        try:
            claims = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except ExpiredSignatureError:
            raise unauthorized(MSG_TOKEN_EXPIRED)
        except JWTError:
            raise unauthorized(MSG_TOKEN_INVALID)
        return Identity.from_claims(claims)

    def verify(self, headers: Mapping[str, str]) -> Identity:
        """
        Extract, validate and decode the bearer credential.

        Raises:
            ClassifiedError(unauthorized) with one of:
                "Access token required" (absent or malformed header)
                "Token expired"         (valid signature, past `exp`)
                "Invalid token"         (any other validation failure)
        """
        return self.decode(extract_token(headers.get(AUTH_HEADER)))

    @staticmethod
    def authorize(identity: Optional[Identity], required_roles: Iterable[str]) -> None:
        """
        Succeed silently when the identity holds at least one required role.

        An empty `required_roles` only requires that an identity exists.
        """
        if identity is None:
            raise forbidden("Authentication required for this resource")
        required = frozenset(required_roles)
        if required and not (identity.roles & required):
            raise forbidden("Insufficient permissions")

    def issue(
        self,
        payload: Mapping[str, Any],
        ttl: Union[int, float, timedelta, None] = None,
    ) -> str:
        """Sign `payload` into a credential valid for `ttl` (seconds or timedelta)."""
        if ttl is None:
            ttl = self._default_ttl
        if not isinstance(ttl, timedelta):
            ttl = timedelta(seconds=ttl)
        now = datetime.now(timezone.utc)
        claims = dict(payload)
        claims["iat"] = int(now.timestamp())
        claims["exp"] = int((now + ttl).timestamp())
        return jwt.encode(claims, self._secret, algorithm=self._algorithm)


# ── FastAPI dependencies ──────────────────────────────────────────────────

def current_identity(request: Request) -> Identity:
    """Identity attached by the pipeline; unauthorized when there is none."""
    ctx = get_context(request)
    identity = ctx.identity if ctx is not None else None
    if identity is None:
        raise unauthorized(MSG_TOKEN_REQUIRED)
    return identity


def require_roles(*roles: str):
    """Dependency factory re-asserting role membership inside a handler."""

    def role_checker(request: Request) -> Identity:
        identity = current_identity(request)
        AuthGuard.authorize(identity, roles)
        return identity

    return role_checker


__all__ = [
    "AuthGuard",
    "Identity",
    "current_identity",
    "extract_token",
    "require_roles",
]
