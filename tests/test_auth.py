"""Tests for :mod:`services.auth`."""

import asyncio
import re
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy import update
from sqlmodel import select

from core.exceptions import DeliveryFailed, InvalidToken, TokenExpired
from core.locks import DistributedLock
from models.auth import AuthSession, DeviceInfo
from models.user import UserCreate
from services.auth import AuthService
from services.users import UserService

DEVICE = DeviceInfo(device_id="device-1", platform="ios", os="17.4", app_version="2.3.0")


@pytest.fixture
def users(database, settings) -> UserService:
    return UserService(database, settings)


@pytest.fixture
def auth(database, store, users, email_sender, settings) -> AuthService:
    return AuthService(
        database=database,
        store=store,
        lock=DistributedLock(store),
        users=users,
        email=email_sender,
        settings=settings,
    )


@pytest_asyncio.fixture
async def user(users):
    return await users.create(UserCreate(email="Ada@Example.com", first_name="Ada"))


async def _session_row(database, refresh_token):
    async with database.get_session() as session:
        result = await session.execute(
            select(AuthSession).where(AuthSession.refresh_token == refresh_token)
        )
        return result.scalars().first()


def test_access_token_round_trip(auth):
    token = auth.create_access_token("user-1")

    payload = auth.verify_access_token(token)
    assert payload["sub"] == "user-1"
    assert payload["type"] == "access"


def test_tampered_access_token_is_rejected(auth):
    token = auth.create_access_token("user-1")
    assert auth.verify_access_token(token[:-2] + "xx") is None
    assert auth.verify_access_token("not-a-jwt") is None


async def test_create_session_persists_device(auth, database, user):
    pair = await auth.create_session(user.id, DEVICE)

    assert len(pair.refresh_token) == 80
    row = await _session_row(database, pair.refresh_token)
    assert row.user_id == user.id
    assert row.device_id == "device-1"
    assert row.platform == "ios"
    assert row.is_valid


async def test_refresh_rotates_token(auth, database, user):
    pair = await auth.create_session(user.id, DEVICE)

    rotated = await auth.refresh(pair.refresh_token)

    assert rotated.refresh_token != pair.refresh_token
    assert auth.verify_access_token(rotated.access_token)["sub"] == user.id
    assert await _session_row(database, pair.refresh_token) is None
    assert (await _session_row(database, rotated.refresh_token)).is_valid

    with pytest.raises(InvalidToken):
        await auth.refresh(pair.refresh_token)


async def test_concurrent_refresh_has_exactly_one_winner(auth, user):
    pair = await auth.create_session(user.id, DEVICE)

    results = await asyncio.gather(
        *(auth.refresh(pair.refresh_token) for _ in range(5)),
        return_exceptions=True
    )

    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, Exception)]
    assert len(winners) == 1
    assert all(isinstance(e, InvalidToken) for e in losers)


async def test_expired_session_is_invalidated(auth, database, user):
    pair = await auth.create_session(user.id, DEVICE)
    async with database.get_session() as session:
        await session.execute(
            update(AuthSession)
            .where(AuthSession.refresh_token == pair.refresh_token)
            .values(expires_at=datetime.now(timezone.utc) - timedelta(minutes=1))
        )
        await session.commit()

    with pytest.raises(TokenExpired):
        await auth.refresh(pair.refresh_token)

    assert not (await _session_row(database, pair.refresh_token)).is_valid
    with pytest.raises(InvalidToken):
        await auth.refresh(pair.refresh_token)


async def test_unknown_refresh_token(auth):
    with pytest.raises(InvalidToken):
        await auth.refresh("f" * 80)


async def test_invalidate_is_idempotent(auth, user):
    pair = await auth.create_session(user.id, DEVICE)

    await auth.invalidate(pair.refresh_token)
    await auth.invalidate(pair.refresh_token)

    with pytest.raises(InvalidToken):
        await auth.refresh(pair.refresh_token)


async def test_invalidate_all_sessions(auth, user):
    first = await auth.create_session(user.id, DEVICE)
    second = await auth.create_session(user.id, DeviceInfo(device_id="device-2"))

    assert await auth.invalidate_all(user.id) == 2
    assert await auth.invalidate_all(user.id) == 0
    for pair in (first, second):
        with pytest.raises(InvalidToken):
            await auth.refresh(pair.refresh_token)


async def test_email_sign_in_link_is_single_use(auth, email_sender, store, users):
    await auth.initiate_email_auth("New.User@Example.com")

    message = email_sender.send.call_args.args[0]
    assert message.to == "new.user@example.com"
    token = re.search(r"token=([0-9a-f]{64})", message.text).group(1)
    assert await store.exists(f"emailtoken:{token}")

    user, pair = await auth.verify_email_token(token, DEVICE)
    assert user.email == "new.user@example.com"
    assert await users.get_by_email("new.user@example.com") is not None
    assert auth.verify_access_token(pair.access_token)["sub"] == user.id

    with pytest.raises(InvalidToken):
        await auth.verify_email_token(token, DEVICE)


async def test_email_sign_in_reuses_existing_account(auth, email_sender, user, users):
    await auth.initiate_email_auth("ada@example.com")

    token = re.search(r"token=([0-9a-f]{64})", email_sender.send.call_args.args[0].text).group(1)
    signed_in, _ = await auth.verify_email_token(token, DEVICE)

    assert signed_in.id == user.id
    _, total = await users.list()
    assert total == 1


async def test_email_delivery_failure_discards_token(auth, email_sender, store):
    email_sender.send.side_effect = DeliveryFailed("email", "smtp down")

    with pytest.raises(DeliveryFailed):
        await auth.initiate_email_auth("someone@example.com")

    assert await store.delete_pattern("emailtoken:*") == 0
