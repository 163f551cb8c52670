"""Session management: magic-link sign-in, access tokens and refresh rotation.

Refresh tokens are opaque 80-char hex strings stored on AuthSession rows and
rotated on every refresh. Rotation runs under a distributed lock keyed by a
hash of the presented token, and the row update is conditional on the old
token, so two concurrent refreshes of one token yield exactly one success.
"""

import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

from jose import jwt, JWTError
from sqlalchemy import update
from sqlmodel import select

from constants import EMAIL_TOKEN_PREFIX, REFRESH_LOCK_PREFIX
from core.config import Settings
from core.database import Database
from core.exceptions import DeliveryFailed, InvalidToken, LockUnavailable, TokenExpired
from core.locks import DistributedLock
from core.logging import get_logger
from core.store import KeyValueStore
from models.auth import AuthSession, DeviceInfo, TokenPair
from models.user import User, UserCreate
from services.messaging import EmailMessage, EmailSender
from services.users import UserService

logger = get_logger(__name__)

REFRESH_TOKEN_BYTES = 40
EMAIL_TOKEN_BYTES = 32


def _token_fingerprint(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class AuthService:
    """Issues and rotates session tokens."""

    def __init__(self, database: Database, store: KeyValueStore, lock: DistributedLock,
                 users: UserService, email: EmailSender, settings: Settings):
        self.database = database
        self.store = store
        self.lock = lock
        self.users = users
        self.email = email
        self.settings = settings

    # =========================================================================
    # ACCESS TOKENS
    # =========================================================================

    def create_access_token(self, user_id: str) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": user_id,
            "iat": now,
            "exp": now + timedelta(minutes=self.settings.access_token_expire_minutes),
            "type": "access",
        }
        return jwt.encode(payload, self.settings.jwt_secret_key, algorithm=self.settings.jwt_algorithm)

    def verify_access_token(self, token: str) -> Optional[Dict[str, Any]]:
        """Decode an access token; None when invalid or expired."""
        try:
            payload = jwt.decode(token, self.settings.jwt_secret_key,
                                 algorithms=[self.settings.jwt_algorithm])
        except JWTError as e:
            logger.debug("Access token rejected", error=str(e))
            return None
        if payload.get("type") != "access" or not payload.get("sub"):
            return None
        return payload

    # =========================================================================
    # SESSIONS
    # =========================================================================

    def _session_expiry(self, now: datetime) -> datetime:
        return now + timedelta(days=self.settings.refresh_token_expire_days)

    async def create_session(self, user_id: str, device: DeviceInfo) -> TokenPair:
        now = datetime.now(timezone.utc)
        refresh_token = secrets.token_hex(REFRESH_TOKEN_BYTES)
        session_row = AuthSession(
            user_id=user_id,
            refresh_token=refresh_token,
            device_id=device.device_id,
            platform=device.platform,
            os=device.os,
            app_version=device.app_version,
            last_active=now,
            expires_at=self._session_expiry(now),
        )
        async with self.database.get_session() as session:
            session.add(session_row)
            await session.commit()

        logger.info("Session created", user_id=user_id, device_id=device.device_id,
                    platform=device.platform)
        return TokenPair(access_token=self.create_access_token(user_id), refresh_token=refresh_token)

    async def refresh(self, refresh_token: str) -> TokenPair:
        """Exchange a refresh token for a new pair.

        Raises:
            InvalidToken: Unknown, revoked, already rotated, or rotating concurrently
            TokenExpired: Session expired; it is invalidated as a side effect
        """
        lock_key = REFRESH_LOCK_PREFIX + _token_fingerprint(refresh_token)
        try:
            async with self.lock.with_lock(lock_key, self.settings.session_lock_ttl):
                return await self._rotate(refresh_token)
        except LockUnavailable:
            logger.info("Concurrent refresh rejected")
            raise InvalidToken("Refresh already in progress for this token")

    async def _rotate(self, old_token: str) -> TokenPair:
        async with self.database.get_session() as session:
            result = await session.execute(
                select(AuthSession).where(AuthSession.refresh_token == old_token)
            )
            current = result.scalars().first()
            if current is None or not current.is_valid:
                raise InvalidToken("Invalid refresh token")

            now = datetime.now(timezone.utc)
            if current.is_expired(now):
                current.is_valid = False
                current.updated_at = now
                await session.commit()
                logger.info("Session expired", session_id=current.id, user_id=current.user_id)
                raise TokenExpired("Refresh token expired")

            new_token = secrets.token_hex(REFRESH_TOKEN_BYTES)
            rotated = await session.execute(
                update(AuthSession)
                .where(
                    AuthSession.id == current.id,
                    AuthSession.refresh_token == old_token,
                    AuthSession.is_valid.is_(True),
                )
                .values(
                    refresh_token=new_token,
                    last_active=now,
                    expires_at=self._session_expiry(now),
                    updated_at=now,
                )
            )
            if rotated.rowcount != 1:
                await session.rollback()
                raise InvalidToken("Invalid refresh token")
            await session.commit()

        logger.info("Session refreshed", session_id=current.id, user_id=current.user_id)
        return TokenPair(access_token=self.create_access_token(current.user_id), refresh_token=new_token)

    async def invalidate(self, refresh_token: str) -> None:
        async with self.database.get_session() as session:
            await session.execute(
                update(AuthSession)
                .where(AuthSession.refresh_token == refresh_token)
                .values(is_valid=False, updated_at=datetime.now(timezone.utc))
            )
            await session.commit()

    async def invalidate_all(self, user_id: str) -> int:
        async with self.database.get_session() as session:
            result = await session.execute(
                update(AuthSession)
                .where(AuthSession.user_id == user_id, AuthSession.is_valid.is_(True))
                .values(is_valid=False, updated_at=datetime.now(timezone.utc))
            )
            await session.commit()
        logger.info("All sessions invalidated", user_id=user_id, count=result.rowcount)
        return result.rowcount

    # =========================================================================
    # MAGIC-LINK SIGN-IN
    # =========================================================================

    async def initiate_email_auth(self, email: str) -> None:
        """Email a single-use sign-in link, creating the account on first use."""
        email = email.lower().strip()
        user = await self.users.get_by_email(email)
        if user is None:
            user = await self.users.create(UserCreate(email=email))

        token = secrets.token_hex(EMAIL_TOKEN_BYTES)
        token_key = EMAIL_TOKEN_PREFIX + token
        await self.store.set(token_key, email, ttl=self.settings.email_token_ttl)

        link = f"{self.settings.app_url.rstrip('/')}/auth/verify?token={token}"
        minutes = self.settings.email_token_ttl // 60
        message = EmailMessage(
            to=email,
            subject=f"Sign in to {self.settings.app_name}",
            text=f"Click the link below to sign in. It expires in {minutes} minutes.\n\n{link}\n",
            html=(
                f"<p>Click the link below to sign in. It expires in {minutes} minutes.</p>"
                f'<p><a href="{link}">Sign in to {self.settings.app_name}</a></p>'
            ),
        )
        try:
            await self.email.send(message)
        except DeliveryFailed:
            await self.store.delete(token_key)
            raise

        logger.info("Sign-in link sent", user_id=user.id)

    async def verify_email_token(self, token: str, device: DeviceInfo) -> Tuple[User, TokenPair]:
        email = await self.store.pop(EMAIL_TOKEN_PREFIX + token)
        if email is None:
            raise InvalidToken("Invalid or expired sign-in link")

        user = await self.users.get_by_email(email)
        if user is None:
            raise InvalidToken("Invalid or expired sign-in link")

        return user, await self.create_session(user.id, device)
