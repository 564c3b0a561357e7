"""
Archetype Backend - User Entity
=================================

What:  The User domain entity and its field rules.
Why:   Validation rules live with the entity so every path that creates or
       changes a user (HTTP, scripts, tests) enforces the same rules.
How:   User.create() validates and normalizes a new user; user.update()
       applies a partial change. Violations raise a `validation`
       ClassifiedError naming the offending field.

Rules:
    email:  matches ^[^\\s@]+@[^\\s@]+\\.[^\\s@]+$, stored trimmed and lower-cased
    name:   at least 2 characters after trimming, stored trimmed
"""

import re
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from archetype.exceptions import field_error

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_NAME_LENGTH = 2


def _now() -> datetime:
    return datetime.now(timezone.utc)


def is_valid_email(email: Optional[str]) -> bool:
    return isinstance(email, str) and EMAIL_PATTERN.match(email.strip()) is not None


def is_valid_name(name: Optional[str]) -> bool:
    return isinstance(name, str) and len(name.strip()) >= MIN_NAME_LENGTH


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _check_email(email: Optional[str]) -> str:
    if not is_valid_email(email):
        raise field_error("email", "Invalid email format")
    return normalize_email(email)


def _check_name(name: Optional[str]) -> str:
    if not is_valid_name(name):
        raise field_error("name", f"Name must be at least {MIN_NAME_LENGTH} characters")
    return name.strip()


@dataclass
class User:
    email: str
    name: str
    id: Optional[int] = None
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    @classmethod
    def create(cls, email: Optional[str], name: Optional[str]) -> "User":
        """Validate and normalize a brand-new user (no id yet)."""
        return cls(email=_check_email(email), name=_check_name(name))

    def update(self, name: Optional[str] = None, email: Optional[str] = None) -> "User":
        """Apply a partial change in place; untouched fields keep their value."""
        if name is not None:
            self.name = _check_name(name)
        if email is not None:
            self.email = _check_email(email)
        self.updated_at = _now()
        return self

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
