"""
Archetype Backend - User Service (Application Layer)
======================================================

What:  Use cases for the user resource: create, get, list, update, delete.
Why:   Keeps business rules (unique email, existence checks) out of the
       HTTP layer and out of the repository.
How:   Entity rules come from archetype.domain.user; persistence goes through
       whatever UserRepository the service was built with.

Errors raised (all ClassifiedError):
    validation  → entity rule violated (bad email, short name)
    conflict    → email already taken
    not_found   → no user with the given id
"""

import logging
from typing import List, Optional

from archetype.domain.user import User, normalize_email
from archetype.exceptions import conflict, not_found
from archetype.repositories.user_repository import DUPLICATE_EMAIL, UserRepository

logger = logging.getLogger(__name__)


class UserService:
    def __init__(self, repository: UserRepository):
        self.repository = repository

    async def create_user(self, email: str, name: str) -> User:
        user = User.create(email=email, name=name)
        if await self.repository.find_by_email(user.email) is not None:
            raise conflict(DUPLICATE_EMAIL)
        created = await self.repository.create(user)
        logger.info("User created: id=%s", created.id)
        return created

    async def get_user(self, user_id: int) -> User:
        user = await self.repository.find_by_id(user_id)
        if user is None:
            raise not_found("User", user_id)
        return user

    async def list_users(self, limit: int = 10, offset: int = 0) -> List[User]:
        return await self.repository.find_all(limit=limit, offset=offset)

    async def update_user(
        self,
        user_id: int,
        name: Optional[str] = None,
        email: Optional[str] = None,
    ) -> User:
        user = await self.get_user(user_id)
        if email is not None and normalize_email(email) != user.email:
            if await self.repository.find_by_email(normalize_email(email)) is not None:
                raise conflict(DUPLICATE_EMAIL)
        user.update(name=name, email=email)
        updated = await self.repository.update(user)
        if updated is None:
            raise not_found("User", user_id)
        logger.info("User updated: id=%s", user_id)
        return updated

    async def delete_user(self, user_id: int) -> None:
        await self.get_user(user_id)
        if not await self.repository.delete(user_id):
            raise not_found("User", user_id)
        logger.info("User deleted: id=%s", user_id)
