"""Tests for :mod:`services.users`."""

import pytest

from core.exceptions import Conflict, NotFound
from models.user import UserCreate, UserUpdate
from services.users import UserService


@pytest.fixture
def users(database, settings) -> UserService:
    return UserService(database, settings)


async def test_create_normalizes_email_and_phone(users):
    user = await users.create(UserCreate(email=" Grace@Example.COM ", phone="(555) 123-4567"))

    assert user.email == "grace@example.com"
    assert user.phone == "+15551234567"
    assert not user.phone_verified
    assert (await users.get(user.id)).email == "grace@example.com"


async def test_duplicate_email_or_phone_conflicts(users):
    await users.create(UserCreate(email="a@example.com", phone="+15550000001"))

    with pytest.raises(Conflict):
        await users.create(UserCreate(email="A@example.com"))
    with pytest.raises(Conflict):
        await users.create(UserCreate(email="b@example.com", phone="555-000-0001"))


async def test_update_phone_resets_verification(users):
    user = await users.create(UserCreate(email="a@example.com"))
    await users.mark_phone_verified(user.id, "+15550000001")
    assert (await users.get(user.id)).phone_verified

    updated = await users.update(user.id, UserUpdate(phone="+15550000002", first_name="Ann"))

    assert updated.phone == "+15550000002"
    assert updated.first_name == "Ann"
    assert not updated.phone_verified


async def test_list_is_paginated(users):
    for i in range(5):
        await users.create(UserCreate(email=f"user{i}@example.com"))

    page, total = await users.list(page=2, limit=2)

    assert total == 5
    assert len(page) == 2


async def test_delete_removes_user(users):
    user = await users.create(UserCreate(email="gone@example.com"))

    await users.delete(user.id)

    with pytest.raises(NotFound):
        await users.get(user.id)
    with pytest.raises(NotFound):
        await users.delete(user.id)
