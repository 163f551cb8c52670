"""Delivery address models."""

from datetime import datetime
from enum import Enum
from typing import Optional
from sqlmodel import SQLModel, Field, Column, DateTime
from sqlalchemy import func

from models.user import new_id, utcnow


class AddressType(str, Enum):
    """Kind of address.

    HOME and WORK are unique per user; adding another one replaces the
    existing record of that type. CUSTOM addresses are unlimited.
    """
    HOME = "home"
    WORK = "work"
    CUSTOM = "custom"


class AddressBase(SQLModel):
    label: Optional[str] = Field(default=None, max_length=100)
    street: str = Field(max_length=255)
    apartment: Optional[str] = Field(default=None, max_length=50)
    building_name: Optional[str] = Field(default=None, max_length=100)
    entry_code: Optional[str] = Field(default=None, max_length=50)
    city: str = Field(max_length=100)
    state: str = Field(max_length=50)
    zip_code: str = Field(max_length=20)
    country: str = Field(default="US", max_length=2)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    hand_it_to_me: bool = Field(default=False)
    leave_at_door: bool = Field(default=True)
    instructions: Optional[str] = Field(default=None, max_length=500)
    is_default: bool = Field(default=False)
    address_type: AddressType = Field(default=AddressType.CUSTOM)


class Address(AddressBase, table=True):
    __tablename__ = "addresses"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=32)
    user_id: str = Field(foreign_key="users.id", index=True, max_length=32)
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), server_default=func.now())
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), server_default=func.now())
    )


class AddressCreate(AddressBase):
    pass


class AddressUpdate(SQLModel):
    label: Optional[str] = None
    street: Optional[str] = None
    apartment: Optional[str] = None
    building_name: Optional[str] = None
    entry_code: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    hand_it_to_me: Optional[bool] = None
    leave_at_door: Optional[bool] = None
    instructions: Optional[str] = None
    is_default: Optional[bool] = None
    address_type: Optional[AddressType] = None


class AddressFromPlace(SQLModel):
    """Address created from a Places id plus the details the user types in."""
    place_id: str
    session_token: Optional[str] = None
    label: Optional[str] = None
    apartment: Optional[str] = None
    building_name: Optional[str] = None
    entry_code: Optional[str] = None
    hand_it_to_me: bool = False
    leave_at_door: bool = True
    instructions: Optional[str] = None
    is_default: bool = False
    address_type: AddressType = AddressType.CUSTOM


class AddressRead(AddressBase):
    id: str
    user_id: str
    created_at: datetime
    updated_at: datetime
