"""Delivery address management.

Address lists are cached per user and page under
cache:addresses:{user_id}:{page}:{limit}; every write drops all pages for
that user.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import func, update
from sqlmodel import select

from constants import USER_ADDRESSES
from core.cache import CacheAside, cache_key
from core.config import Settings
from core.database import Database
from core.exceptions import Conflict, InvalidAddress, NotFound, StoreUnavailable
from core.logging import get_logger
from models.address import (
    Address, AddressCreate, AddressFromPlace, AddressType, AddressUpdate,
)
from services.location import LocationService

logger = get_logger(__name__)

UNIQUE_TYPES = (AddressType.HOME, AddressType.WORK)


def parse_formatted_address(formatted: str) -> Tuple[str, str, str, str]:
    """Split "street, city, ST 12345, Country" into (street, city, state, zip).

    Raises:
        InvalidAddress: If fewer than three comma-separated parts are present
    """
    parts = [p.strip() for p in (formatted or "").split(",") if p.strip()]
    if len(parts) < 3:
        raise InvalidAddress(f"Cannot parse address: {formatted!r}")

    street = parts[0]
    if len(parts) >= 4:
        city, state_zip = parts[-3], parts[-2]
    else:
        city, state_zip = parts[1], parts[2]

    tokens = state_zip.split()
    if not tokens:
        raise InvalidAddress(f"Cannot parse state from address: {formatted!r}")
    state = tokens[0]
    zip_code = tokens[1] if len(tokens) > 1 else ""
    return street, city, state, zip_code


class AddressService:
    """CRUD over a user's delivery addresses."""

    def __init__(self, database: Database, cache: CacheAside,
                 location: LocationService, settings: Settings):
        self.database = database
        self.cache = cache
        self.location = location
        self.settings = settings

    async def _invalidate(self, user_id: str) -> None:
        pattern = cache_key(USER_ADDRESSES, user_id) + ":*"
        try:
            await self.cache.invalidate_pattern(pattern)
        except StoreUnavailable as e:
            # Entries age out after address_cache_ttl
            logger.warning("Address cache invalidation failed", user_id=user_id, error=str(e))

    async def _clear_default(self, session, user_id: str, keep_id: str) -> None:
        await session.execute(
            update(Address)
            .where(Address.user_id == user_id, Address.id != keep_id, Address.is_default.is_(True))
            .values(is_default=False)
        )

    async def _get_owned(self, session, user_id: str, address_id: str) -> Address:
        address = await session.get(Address, address_id)
        if address is None or address.user_id != user_id:
            raise NotFound("Address not found")
        return address

    async def list(self, user_id: str, page: int = 1, limit: int = 20) -> Dict[str, Any]:
        async def _load() -> Dict[str, Any]:
            async with self.database.get_session() as session:
                total = (await session.execute(
                    select(func.count()).select_from(Address).where(Address.user_id == user_id)
                )).scalar_one()
                result = await session.execute(
                    select(Address)
                    .where(Address.user_id == user_id)
                    .order_by(Address.is_default.desc(), Address.created_at.desc())
                    .offset((page - 1) * limit)
                    .limit(limit)
                )
                items = [a.model_dump(mode="json") for a in result.scalars().all()]
            return {"items": items, "total": total, "page": page, "limit": limit}

        return await self.cache.get_or_compute(
            cache_key(USER_ADDRESSES, user_id, page, limit),
            _load,
            ttl=self.settings.address_cache_ttl,
        )

    async def get(self, user_id: str, address_id: str) -> Address:
        async with self.database.get_session() as session:
            return await self._get_owned(session, user_id, address_id)

    async def add(self, user_id: str, data: AddressCreate) -> Address:
        """Add an address.

        A second home or work address replaces the existing one of that type.
        The user's first address becomes the default.
        """
        values = data.model_dump()
        now = datetime.now(timezone.utc)

        async with self.database.get_session() as session:
            existing: Optional[Address] = None
            if data.address_type in UNIQUE_TYPES:
                result = await session.execute(
                    select(Address).where(
                        Address.user_id == user_id,
                        Address.address_type == data.address_type
                    )
                )
                existing = result.scalars().first()

            if existing is not None:
                for field, value in values.items():
                    setattr(existing, field, value)
                existing.updated_at = now
                address = existing
            else:
                count = (await session.execute(
                    select(func.count()).select_from(Address).where(Address.user_id == user_id)
                )).scalar_one()
                address = Address(user_id=user_id, **values)
                if count == 0:
                    address.is_default = True
                session.add(address)

            if address.is_default:
                await self._clear_default(session, user_id, address.id)

            await session.commit()
            await session.refresh(address)

        await self._invalidate(user_id)
        logger.info("Address saved", user_id=user_id, address_id=address.id,
                    address_type=address.address_type, replaced=existing is not None)
        return address

    async def add_from_place(self, user_id: str, data: AddressFromPlace) -> Address:
        details = await self.location.place_details(data.place_id, data.session_token)
        street, city, state, zip_code = parse_formatted_address(details["formatted_address"])

        create = AddressCreate(
            street=street,
            city=city,
            state=state,
            zip_code=zip_code,
            country=self.settings.places_country.upper(),
            latitude=details.get("latitude"),
            longitude=details.get("longitude"),
            **data.model_dump(exclude={"place_id", "session_token"}),
        )
        return await self.add(user_id, create)

    async def update(self, user_id: str, address_id: str, data: AddressUpdate) -> Address:
        changes = data.model_dump(exclude_unset=True)

        async with self.database.get_session() as session:
            address = await self._get_owned(session, user_id, address_id)

            new_type = changes.get("address_type")
            if new_type in UNIQUE_TYPES and new_type != address.address_type:
                clash = await session.execute(
                    select(Address).where(
                        Address.user_id == user_id,
                        Address.address_type == new_type,
                        Address.id != address_id
                    )
                )
                if clash.scalars().first():
                    raise Conflict(f"A {new_type.value} address already exists")

            for field, value in changes.items():
                setattr(address, field, value)
            address.updated_at = datetime.now(timezone.utc)

            if changes.get("is_default"):
                await self._clear_default(session, user_id, address.id)

            await session.commit()
            await session.refresh(address)

        await self._invalidate(user_id)
        return address

    async def delete(self, user_id: str, address_id: str) -> None:
        async with self.database.get_session() as session:
            address = await self._get_owned(session, user_id, address_id)
            await session.delete(address)
            await session.commit()

        await self._invalidate(user_id)
        logger.info("Address deleted", user_id=user_id, address_id=address_id)

    async def set_default(self, user_id: str, address_id: str) -> Address:
        async with self.database.get_session() as session:
            address = await self._get_owned(session, user_id, address_id)
            address.is_default = True
            address.updated_at = datetime.now(timezone.utc)
            await self._clear_default(session, user_id, address.id)
            await session.commit()
            await session.refresh(address)

        await self._invalidate(user_id)
        return address
