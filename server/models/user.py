"""User account models."""

import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlmodel import SQLModel, Field, Column, DateTime
from sqlalchemy import func


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


class User(SQLModel, table=True):
    """Customer account. Email and phone are unique when set."""

    __tablename__ = "users"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=32)
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    email: str = Field(unique=True, index=True, max_length=255)
    phone: Optional[str] = Field(default=None, unique=True, index=True, max_length=20)
    phone_verified: bool = Field(default=False)
    country_code: str = Field(default="US", max_length=2)
    profile_photo: Optional[str] = Field(default=None, max_length=500)
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), server_default=func.now())
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), server_default=func.now())
    )


class UserCreate(SQLModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: str
    phone: Optional[str] = None
    country_code: str = "US"
    profile_photo: Optional[str] = None


class UserUpdate(SQLModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    country_code: Optional[str] = None
    profile_photo: Optional[str] = None


class UserRead(SQLModel):
    id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: str
    phone: Optional[str] = None
    phone_verified: bool
    country_code: str
    profile_photo: Optional[str] = None
    created_at: datetime
    updated_at: datetime
