"""User account CRUD."""

from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy import func, update, delete
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from core.config import Settings
from core.database import Database
from core.exceptions import Conflict, NotFound
from core.logging import get_logger
from models.address import Address
from models.auth import AuthSession
from models.user import User, UserCreate, UserUpdate
from services.phone_utils import normalize_phone_e164

logger = get_logger(__name__)


class UserService:
    """Creates, reads, updates and deletes user accounts."""

    def __init__(self, database: Database, settings: Settings):
        self.database = database
        self.settings = settings

    def _normalize_phone(self, phone: Optional[str]) -> Optional[str]:
        if not phone:
            return None
        return normalize_phone_e164(phone, self.settings.default_country_code)

    async def _ensure_unique(self, email: Optional[str], phone: Optional[str],
                             exclude_id: Optional[str] = None) -> None:
        async with self.database.get_session() as session:
            if email:
                stmt = select(User).where(User.email == email)
                if exclude_id:
                    stmt = stmt.where(User.id != exclude_id)
                if (await session.execute(stmt)).scalars().first():
                    raise Conflict("Email already registered")
            if phone:
                stmt = select(User).where(User.phone == phone)
                if exclude_id:
                    stmt = stmt.where(User.id != exclude_id)
                if (await session.execute(stmt)).scalars().first():
                    raise Conflict("Phone number already registered")

    async def create(self, data: UserCreate) -> User:
        email = data.email.lower().strip()
        phone = self._normalize_phone(data.phone)
        await self._ensure_unique(email, phone)

        user = User(
            first_name=data.first_name,
            last_name=data.last_name,
            email=email,
            phone=phone,
            country_code=data.country_code.upper(),
            profile_photo=data.profile_photo,
        )
        async with self.database.get_session() as session:
            session.add(user)
            try:
                await session.commit()
            except IntegrityError as e:
                raise Conflict("User already exists") from e
            await session.refresh(user)

        logger.info("User created", user_id=user.id)
        return user

    async def get(self, user_id: str) -> User:
        async with self.database.get_session() as session:
            user = await session.get(User, user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    async def get_by_email(self, email: str) -> Optional[User]:
        async with self.database.get_session() as session:
            result = await session.execute(
                select(User).where(User.email == email.lower().strip())
            )
            return result.scalars().first()

    async def list(self, page: int = 1, limit: int = 20) -> Tuple[List[User], int]:
        offset = (page - 1) * limit
        async with self.database.get_session() as session:
            total = (await session.execute(select(func.count()).select_from(User))).scalar_one()
            result = await session.execute(
                select(User).order_by(User.created_at.desc()).offset(offset).limit(limit)
            )
            return list(result.scalars().all()), total

    async def update(self, user_id: str, data: UserUpdate) -> User:
        changes = data.model_dump(exclude_unset=True)
        if "email" in changes and changes["email"]:
            changes["email"] = changes["email"].lower().strip()
        if "phone" in changes:
            changes["phone"] = self._normalize_phone(changes["phone"])
        if changes.get("country_code"):
            changes["country_code"] = changes["country_code"].upper()

        await self._ensure_unique(changes.get("email"), changes.get("phone"), exclude_id=user_id)

        async with self.database.get_session() as session:
            user = await session.get(User, user_id)
            if user is None:
                raise NotFound("User not found")
            if "phone" in changes and changes["phone"] != user.phone:
                user.phone_verified = False
            for field, value in changes.items():
                setattr(user, field, value)
            user.updated_at = datetime.now(timezone.utc)
            try:
                await session.commit()
            except IntegrityError as e:
                raise Conflict("User already exists") from e
            await session.refresh(user)
        return user

    async def mark_phone_verified(self, user_id: str, phone: str) -> None:
        """Record that the user proved ownership of phone."""
        async with self.database.get_session() as session:
            user = await session.get(User, user_id)
            if user is None:
                raise NotFound("User not found")
            if user.phone and user.phone != phone:
                logger.info("Verified phone differs from profile phone", user_id=user_id)
                return
            user.phone = phone
            user.phone_verified = True
            user.updated_at = datetime.now(timezone.utc)
            try:
                await session.commit()
            except IntegrityError as e:
                raise Conflict("Phone number already registered") from e

    async def delete(self, user_id: str) -> None:
        """Delete a user with their addresses; their sessions are invalidated."""
        async with self.database.get_session() as session:
            user = await session.get(User, user_id)
            if user is None:
                raise NotFound("User not found")
            await session.execute(delete(Address).where(Address.user_id == user_id))
            await session.execute(
                update(AuthSession)
                .where(AuthSession.user_id == user_id)
                .values(is_valid=False)
            )
            await session.delete(user)
            await session.commit()
        logger.info("User deleted", user_id=user_id)
