"""Tests for :mod:`services.addresses`."""

from unittest import mock

import pytest
import pytest_asyncio

from core.cache import CacheAside
from core.exceptions import Conflict, InvalidAddress, NotFound
from models.address import AddressCreate, AddressFromPlace, AddressType, AddressUpdate
from models.user import UserCreate
from services.addresses import AddressService, parse_formatted_address
from services.location import LocationService
from services.users import UserService


def address(**overrides) -> AddressCreate:
    values = {"street": "1 Main St", "city": "Springfield", "state": "IL", "zip_code": "62701"}
    values.update(overrides)
    return AddressCreate(**values)


@pytest.fixture
def location():
    service = mock.AsyncMock(spec=LocationService)
    service.place_details.return_value = {
        "place_id": "ChIJ1",
        "formatted_address": "742 Evergreen Terrace, Springfield, IL 62704, USA",
        "latitude": 39.76,
        "longitude": -89.68,
        "types": ["street_address"],
    }
    return service


@pytest.fixture
def addresses(database, store, location, settings) -> AddressService:
    return AddressService(database, CacheAside(store, default_ttl=60), location, settings)


@pytest_asyncio.fixture
async def user_id(database, settings):
    user = await UserService(database, settings).create(UserCreate(email="home@example.com"))
    return user.id


@pytest.mark.parametrize("formatted,expected", [
    ("1 Main St, Springfield, IL 62701, USA", ("1 Main St", "Springfield", "IL", "62701")),
    ("1 Main St, Springfield, IL 62701", ("1 Main St", "Springfield", "IL", "62701")),
    ("1 Main St, Apt 2, Springfield, IL, USA", ("1 Main St", "Springfield", "IL", "")),
])
def test_parse_formatted_address(formatted, expected):
    assert parse_formatted_address(formatted) == expected


def test_parse_formatted_address_rejects_short_input():
    with pytest.raises(InvalidAddress):
        parse_formatted_address("Springfield, USA")


async def test_first_address_becomes_default(addresses, user_id):
    first = await addresses.add(user_id, address())
    second = await addresses.add(user_id, address(street="2 Elm St"))

    assert first.is_default
    assert not second.is_default


async def test_home_address_is_replaced(addresses, user_id):
    first = await addresses.add(user_id, address(address_type=AddressType.HOME))
    second = await addresses.add(user_id, address(street="9 Oak Ave", address_type=AddressType.HOME))

    assert second.id == first.id
    assert second.street == "9 Oak Ave"
    listing = await addresses.list(user_id)
    assert listing["total"] == 1


async def test_set_default_moves_flag(addresses, user_id):
    first = await addresses.add(user_id, address())
    second = await addresses.add(user_id, address(street="2 Elm St"))

    await addresses.set_default(user_id, second.id)

    assert not (await addresses.get(user_id, first.id)).is_default
    assert (await addresses.get(user_id, second.id)).is_default


async def test_list_is_cached_and_invalidated_on_write(addresses, store, user_id):
    await addresses.add(user_id, address())

    first = await addresses.list(user_id)
    assert first["total"] == 1
    assert await store.exists(f"cache:addresses:{user_id}:1:20")

    await addresses.add(user_id, address(street="2 Elm St"))

    assert not await store.exists(f"cache:addresses:{user_id}:1:20")
    assert (await addresses.list(user_id))["total"] == 2


async def test_update_rejects_second_work_address(addresses, user_id):
    await addresses.add(user_id, address(address_type=AddressType.WORK))
    other = await addresses.add(user_id, address(street="2 Elm St"))

    with pytest.raises(Conflict):
        await addresses.update(user_id, other.id, AddressUpdate(address_type=AddressType.WORK))

    updated = await addresses.update(user_id, other.id, AddressUpdate(instructions="Ring twice"))
    assert updated.instructions == "Ring twice"


async def test_other_users_address_is_not_found(addresses, database, settings, user_id):
    mine = await addresses.add(user_id, address())
    stranger = await UserService(database, settings).create(UserCreate(email="other@example.com"))

    with pytest.raises(NotFound):
        await addresses.get(stranger.id, mine.id)
    with pytest.raises(NotFound):
        await addresses.delete(stranger.id, mine.id)


async def test_delete_address(addresses, user_id):
    created = await addresses.add(user_id, address())

    await addresses.delete(user_id, created.id)

    with pytest.raises(NotFound):
        await addresses.get(user_id, created.id)
    assert (await addresses.list(user_id))["total"] == 0


async def test_add_from_place_uses_place_details(addresses, location, user_id):
    created = await addresses.add_from_place(
        user_id,
        AddressFromPlace(place_id="ChIJ1", session_token="tok", apartment="4B"),
    )

    location.place_details.assert_awaited_once_with("ChIJ1", "tok")
    assert created.street == "742 Evergreen Terrace"
    assert created.city == "Springfield"
    assert created.state == "IL"
    assert created.zip_code == "62704"
    assert created.apartment == "4B"
    assert created.latitude == pytest.approx(39.76)
