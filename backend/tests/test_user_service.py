"""
Archetype Backend - User Service Unit Tests
=============================================

What:  Tests for UserService business rules over the in-memory repository.
Why:   The service owns uniqueness and existence checks; the entity owns
       field rules. Both must surface as the right ClassifiedError kind.

What we test:
    ✅ Create normalizes input and assigns ids
    ✅ Entity rules reject bad email / short name
    ✅ Duplicate email → conflict (create and update)
    ✅ Missing user → not_found (get, update, delete)
    ✅ List honours limit/offset
"""

import pytest
from unittest.mock import AsyncMock

from archetype.domain.user import User
from archetype.exceptions import ClassifiedError, ErrorKind
from archetype.repositories.user_repository import InMemoryUserRepository
from archetype.services.user_service import UserService


@pytest.fixture
def service():
    return UserService(InMemoryUserRepository())


class TestCreate:
    @pytest.mark.asyncio
    async def test_create_assigns_id_and_normalizes(self, service):
        user = await service.create_user(email="  Ann@Example.COM ", name="  Ann ")
        assert user.id == 1
        assert user.email == "ann@example.com"
        assert user.name == "Ann"

    @pytest.mark.asyncio
    async def test_ids_increase(self, service):
        first = await service.create_user(email="a@example.com", name="Ann")
        second = await service.create_user(email="b@example.com", name="Bob")
        assert second.id == first.id + 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "email,name,field",
        [
            ("no-at-sign", "Valid", "email"),
            ("a@b", "Valid", "email"),
            ("a b@c.d", "Valid", "email"),
            ("ok@example.com", " x ", "name"),
        ],
    )
    async def test_entity_rules(self, service, email, name, field):
        with pytest.raises(ClassifiedError) as exc_info:
            await service.create_user(email=email, name=name)
        assert exc_info.value.kind is ErrorKind.VALIDATION
        assert exc_info.value.details[0]["field"] == field

    @pytest.mark.asyncio
    async def test_duplicate_email_conflict(self, service):
        await service.create_user(email="dup@example.com", name="One")
        with pytest.raises(ClassifiedError) as exc_info:
            await service.create_user(email="Dup@Example.com", name="Two")
        assert exc_info.value.kind is ErrorKind.CONFLICT


class TestReadUpdateDelete:
    @pytest.mark.asyncio
    async def test_get_missing_user(self, service):
        with pytest.raises(ClassifiedError) as exc_info:
            await service.get_user(99)
        assert exc_info.value.kind is ErrorKind.NOT_FOUND
        assert exc_info.value.message == "User with ID '99' was not found"

    @pytest.mark.asyncio
    async def test_update_name_only(self, service):
        user = await service.create_user(email="c@example.com", name="Carl")
        updated = await service.update_user(user.id, name="Carlos")
        assert updated.name == "Carlos"
        assert updated.email == "c@example.com"
        assert updated.updated_at >= user.updated_at

    @pytest.mark.asyncio
    async def test_update_to_taken_email_conflicts(self, service):
        await service.create_user(email="x@example.com", name="Xavier")
        user = await service.create_user(email="y@example.com", name="Yolanda")
        with pytest.raises(ClassifiedError) as exc_info:
            await service.update_user(user.id, email="X@example.com")
        assert exc_info.value.kind is ErrorKind.CONFLICT

    @pytest.mark.asyncio
    async def test_update_to_own_email_allowed(self, service):
        user = await service.create_user(email="z@example.com", name="Zed")
        updated = await service.update_user(user.id, email="Z@example.com")
        assert updated.email == "z@example.com"

    @pytest.mark.asyncio
    async def test_update_missing_user(self, service):
        with pytest.raises(ClassifiedError) as exc_info:
            await service.update_user(5, name="Nobody")
        assert exc_info.value.kind is ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_delete(self, service):
        user = await service.create_user(email="d@example.com", name="Dana")
        await service.delete_user(user.id)
        with pytest.raises(ClassifiedError):
            await service.get_user(user.id)

    @pytest.mark.asyncio
    async def test_delete_missing_user(self, service):
        with pytest.raises(ClassifiedError) as exc_info:
            await service.delete_user(1)
        assert exc_info.value.kind is ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_list_with_offset(self, service):
        for i in range(5):
            await service.create_user(email=f"user{i}@example.com", name=f"User {i}")
        page = await service.list_users(limit=2, offset=3)
        assert [u.email for u in page] == ["user3@example.com", "user4@example.com"]


class TestRepositoryErrors:
    @pytest.mark.asyncio
    async def test_repository_failure_propagates(self):
        repository = AsyncMock()
        repository.find_by_id = AsyncMock(side_effect=RuntimeError("connection reset"))
        with pytest.raises(RuntimeError):
            await UserService(repository).get_user(1)

    @pytest.mark.asyncio
    async def test_vanished_between_read_and_write(self):
        repository = AsyncMock()
        repository.find_by_id = AsyncMock(return_value=User(id=3, email="g@example.com", name="Gone"))
        repository.update = AsyncMock(return_value=None)
        with pytest.raises(ClassifiedError) as exc_info:
            await UserService(repository).update_user(3, name="Still here")
        assert exc_info.value.kind is ErrorKind.NOT_FOUND
