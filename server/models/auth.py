"""Authentication session models."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from sqlmodel import SQLModel, Field, Column, DateTime
from sqlalchemy import func

from models.user import new_id, utcnow


class AuthSession(SQLModel, table=True):
    """One device's refresh-token session.

    Sessions are never deleted; logout and expiry flip is_valid. The refresh
    token changes on every successful refresh.
    """

    __tablename__ = "auth_sessions"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=32)
    user_id: str = Field(index=True, max_length=32)
    refresh_token: str = Field(unique=True, index=True, max_length=128)
    device_id: str = Field(max_length=255)
    platform: str = Field(default="unknown", max_length=50)
    os: str = Field(default="unknown", max_length=50)
    app_version: str = Field(default="unknown", max_length=50)
    is_valid: bool = Field(default=True)
    last_active: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )
    expires_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), server_default=func.now())
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), server_default=func.now())
    )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        expires_at = self.expires_at
        # SQLite returns naive datetimes
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at <= now


@dataclass(frozen=True)
class DeviceInfo:
    device_id: str = "unknown"
    platform: str = "unknown"
    os: str = "unknown"
    app_version: str = "unknown"


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
