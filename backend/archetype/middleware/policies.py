"""
Archetype Backend - Route Policies
====================================

What:  Declares, per route, who may call it and which body schema it takes.
Why:   The auth and schema stages run before the router. They need to know
       a route's requirements without importing handlers, so each resource
       module publishes a list of RoutePolicy entries next to its router.
How:   Paths use Starlette path templates ("/api/v1/users/{user_id}")
       compiled with starlette.routing.compile_path; lookup is by method
       and full-path regex match, first match wins.

Policy semantics:
    roles=None          public, credential optional
    roles=frozenset()   any authenticated identity
    roles={"admin"}     identity must hold at least one listed role
    body=Model          JSON body validated against the pydantic model
"""

import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple, Type

from pydantic import BaseModel
from starlette.routing import compile_path


@dataclass(frozen=True)
class RoutePolicy:
    method: str
    path: str
    roles: Optional[frozenset] = None
    body: Optional[Type[BaseModel]] = None
    _regex: "re.Pattern[str]" = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "method", self.method.upper())
        if self.roles is not None and not isinstance(self.roles, frozenset):
            object.__setattr__(self, "roles", frozenset(self.roles))
        regex, _, _ = compile_path(self.path)
        object.__setattr__(self, "_regex", regex)

    @property
    def requires_auth(self) -> bool:
        return self.roles is not None

    def matches(self, method: str, path: str) -> bool:
        return self.method == method.upper() and self._regex.match(path) is not None


def public(method: str, path: str, body: Optional[Type[BaseModel]] = None) -> RoutePolicy:
    return RoutePolicy(method, path, roles=None, body=body)


def protected(
    method: str,
    path: str,
    roles: Iterable[str] = (),
    body: Optional[Type[BaseModel]] = None,
) -> RoutePolicy:
    return RoutePolicy(method, path, roles=frozenset(roles), body=body)


class RouteTable:
    """Ordered collection of policies, built once at startup."""

    def __init__(self, policies: Iterable[RoutePolicy] = ()):
        self._policies: Tuple[RoutePolicy, ...] = tuple(policies)

    def __len__(self) -> int:
        return len(self._policies)

    def __iter__(self):
        return iter(self._policies)

    def extend(self, policies: Iterable[RoutePolicy]) -> "RouteTable":
        return RouteTable(self._policies + tuple(policies))

    def match(self, method: str, path: str) -> Optional[RoutePolicy]:
        for policy in self._policies:
            if policy.matches(method, path):
                return policy
        return None

    def protected_paths(self) -> List[str]:
        return [f"{p.method} {p.path}" for p in self._policies if p.requires_auth]
