"""
Archetype Backend - User Repository
=====================================

What:  The contract the user service persists through, plus two adapters.
Why:   The service never imports SQLAlchemy; swapping storage (or testing
       without a database) means passing a different repository.
How:   All methods are async. Missing rows are reported as None / False so the
       service decides what "not found" means. Storage failures are raised as
       ClassifiedErrors: a unique-email violation is `conflict`, anything else
       from SQLAlchemy is `internal` (details logged, never returned).
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from archetype.database import Database
from archetype.domain.user import User
from archetype.exceptions import conflict, internal
from archetype.models.user import UserRecord

logger = logging.getLogger(__name__)

DUPLICATE_EMAIL = "User with this email already exists"


class UserRepository(ABC):
    """Persistence port for User entities."""

    @abstractmethod
    async def create(self, user: User) -> User:
        """Persist a new user and return it with its assigned id."""

    @abstractmethod
    async def find_by_id(self, user_id: int) -> Optional[User]:
        ...

    @abstractmethod
    async def find_by_email(self, email: str) -> Optional[User]:
        ...

    @abstractmethod
    async def find_all(self, limit: int = 10, offset: int = 0) -> List[User]:
        """Users ordered by id."""

    @abstractmethod
    async def update(self, user: User) -> Optional[User]:
        """Write back a changed user; None if it no longer exists."""

    @abstractmethod
    async def delete(self, user_id: int) -> bool:
        """Remove a user; False if there was nothing to remove."""


class InMemoryUserRepository(UserRepository):
    """Dict-backed repository. State lives as long as the process."""

    def __init__(self):
        self._rows: Dict[int, User] = {}
        self._next_id = 1

    async def create(self, user: User) -> User:
        if await self.find_by_email(user.email) is not None:
            raise conflict(DUPLICATE_EMAIL)
        stored = replace(user, id=self._next_id)
        self._rows[stored.id] = stored
        self._next_id += 1
        return replace(stored)

    async def find_by_id(self, user_id: int) -> Optional[User]:
        user = self._rows.get(user_id)
        return replace(user) if user is not None else None

    async def find_by_email(self, email: str) -> Optional[User]:
        for user in self._rows.values():
            if user.email == email:
                return replace(user)
        return None

    async def find_all(self, limit: int = 10, offset: int = 0) -> List[User]:
        ordered = [self._rows[k] for k in sorted(self._rows)]
        return [replace(u) for u in ordered[offset:offset + limit]]

    async def update(self, user: User) -> Optional[User]:
        if user.id not in self._rows:
            return None
        clash = await self.find_by_email(user.email)
        if clash is not None and clash.id != user.id:
            raise conflict(DUPLICATE_EMAIL)
        self._rows[user.id] = replace(user)
        return replace(user)

    async def delete(self, user_id: int) -> bool:
        return self._rows.pop(user_id, None) is not None


def _to_entity(record: UserRecord) -> User:
    return User(
        id=record.id,
        email=record.email,
        name=record.name,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


class SqlUserRepository(UserRepository):
    """Async SQLAlchemy repository over the `users` table."""

    def __init__(self, database: Database):
        self.database = database

    def _translate(self, exc: SQLAlchemyError, operation: str):
        if isinstance(exc, IntegrityError):
            return conflict(DUPLICATE_EMAIL)
        logger.error("Database error during %s: %s", operation, exc)
        return internal("A database error occurred", cause=exc)

    async def create(self, user: User) -> User:
        try:
            async with self.database.session() as session:
                record = UserRecord(
                    email=user.email,
                    name=user.name,
                    created_at=user.created_at,
                    updated_at=user.updated_at,
                )
                session.add(record)
                await session.flush()
                return _to_entity(record)
        except SQLAlchemyError as exc:
            raise self._translate(exc, "create")

    async def find_by_id(self, user_id: int) -> Optional[User]:
        try:
            async with self.database.session() as session:
                record = await session.get(UserRecord, user_id)
                return _to_entity(record) if record is not None else None
        except SQLAlchemyError as exc:
            raise self._translate(exc, "find_by_id")

    async def find_by_email(self, email: str) -> Optional[User]:
        try:
            async with self.database.session() as session:
                result = await session.execute(select(UserRecord).where(UserRecord.email == email))
                record = result.scalar_one_or_none()
                return _to_entity(record) if record is not None else None
        except SQLAlchemyError as exc:
            raise self._translate(exc, "find_by_email")

    async def find_all(self, limit: int = 10, offset: int = 0) -> List[User]:
        try:
            async with self.database.session() as session:
                result = await session.execute(
                    select(UserRecord).order_by(UserRecord.id).limit(limit).offset(offset)
                )
                return [_to_entity(r) for r in result.scalars().all()]
        except SQLAlchemyError as exc:
            raise self._translate(exc, "find_all")

    async def update(self, user: User) -> Optional[User]:
        try:
            async with self.database.session() as session:
                record = await session.get(UserRecord, user.id)
                if record is None:
                    return None
                record.email = user.email
                record.name = user.name
                record.updated_at = user.updated_at or datetime.now(timezone.utc)
                await session.flush()
                return _to_entity(record)
        except SQLAlchemyError as exc:
            raise self._translate(exc, "update")

    async def delete(self, user_id: int) -> bool:
        try:
            async with self.database.session() as session:
                result = await session.execute(delete(UserRecord).where(UserRecord.id == user_id))
                return result.rowcount > 0
        except SQLAlchemyError as exc:
            raise self._translate(exc, "delete")
