"""
Database Schemas for the Volunteer Platform

Each stored Pydantic model corresponds to a MongoDB collection. Collection name
is the lowercased class name:
- User -> "user"
- NGO -> "ngo"
- Event -> "event"
- Donation -> "donation"

Documents use camelCase keys, which is also the wire format; Python code uses
snake_case attribute names through aliases.
"""
import re
from datetime import datetime, timezone
from typing import List, Literal, Optional

from bson import ObjectId
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

import config

Role = Literal["volunteer", "ngo", "admin"]
NGOStatus = Literal["pending", "approved", "rejected"]
PaymentStatus = Literal["pending", "completed", "failed"]


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        arbitrary_types_allowed=True,
        str_strip_whitespace=True,
    )


def _check_email(value: str) -> str:
    value = value.strip().lower()
    if not re.match(config.EMAIL_REGEX, value):
        raise ValueError("Invalid email format")
    return value


def _check_phone(value: Optional[str]) -> Optional[str]:
    if value and not re.match(config.PHONE_REGEX, value):
        raise ValueError("Invalid phone number format (must be 10 digits starting with 6-9)")
    return value or None


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


# ===== Stored documents =====

class User(CamelModel):
    name: str = Field(..., description="Full name")
    email: str = Field(..., description="Unique email address, lowercased")
    password: str = Field(..., description="Bcrypt hash, never returned")
    phone: Optional[str] = Field(None, description="Phone number")
    role: Role = Field("volunteer", description="Role: volunteer/ngo/admin")


class NGO(CamelModel):
    name: str = Field(..., description="Registered NGO name")
    email: str = Field(..., description="Unique contact email, lowercased")
    description: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    status: NGOStatus = Field("pending", description="pending/approved/rejected")
    owner_user_id: ObjectId = Field(..., description="Owning user _id")


class Event(CamelModel):
    title: str = Field(..., description="Title of the event")
    description: Optional[str] = Field(None, description="Event description")
    date: datetime = Field(..., description="When the event happens (UTC)")
    location: str = Field(..., description="Event location")
    organization_id: ObjectId = Field(..., description="Owning NGO _id")
    volunteer_ids: List[ObjectId] = Field(default_factory=list, description="Joined volunteers")
    max_volunteers: int = Field(config.DEFAULT_MAX_VOLUNTEERS, ge=1, description="Roster capacity")


class Donation(CamelModel):
    donor_id: Optional[ObjectId] = Field(None, description="Donor user _id, None for anonymous")
    amount: int = Field(..., description="Amount in whole currency units")
    organization_id: ObjectId = Field(..., description="Receiving NGO _id")
    event_id: Optional[ObjectId] = Field(None, description="Linked event _id")
    payment_status: PaymentStatus = Field("pending", description="pending/completed/failed")


# ===== Auth payloads =====

class RegisterPayload(CamelModel):
    name: str = Field(..., min_length=config.NAME_MIN_LENGTH, max_length=config.NAME_MAX_LENGTH)
    email: str
    password: str = Field(..., min_length=config.PASSWORD_MIN_LENGTH, max_length=config.PASSWORD_MAX_LENGTH)
    role: Role = "volunteer"
    phone: Optional[str] = None

    @field_validator("email")
    @classmethod
    def check_email(cls, v: str) -> str:
        return _check_email(v)

    @field_validator("phone")
    @classmethod
    def check_phone(cls, v: Optional[str]) -> Optional[str]:
        return _check_phone(v)


class LoginPayload(CamelModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


# ===== NGO payloads =====

class NGOCreate(CamelModel):
    name: str = Field(..., min_length=config.NAME_MIN_LENGTH)
    email: str
    description: Optional[str] = Field(None, max_length=config.NGO_DESCRIPTION_MAX_LENGTH)
    address: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None

    @field_validator("email")
    @classmethod
    def check_email(cls, v: str) -> str:
        return _check_email(v)

    @field_validator("phone")
    @classmethod
    def check_phone(cls, v: Optional[str]) -> Optional[str]:
        return _check_phone(v)


class NGOUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=config.NAME_MIN_LENGTH)
    email: Optional[str] = None
    description: Optional[str] = Field(None, max_length=config.NGO_DESCRIPTION_MAX_LENGTH)
    address: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None

    @field_validator("email")
    @classmethod
    def check_email(cls, v: Optional[str]) -> Optional[str]:
        return _check_email(v) if v is not None else v

    @field_validator("phone")
    @classmethod
    def check_phone(cls, v: Optional[str]) -> Optional[str]:
        return _check_phone(v)


# ===== Event payloads =====

class EventCreate(CamelModel):
    title: str = Field(..., min_length=config.EVENT_TITLE_MIN_LENGTH, max_length=config.EVENT_TITLE_MAX_LENGTH)
    description: Optional[str] = Field(None, max_length=config.EVENT_DESCRIPTION_MAX_LENGTH)
    date: datetime
    location: str = Field(..., min_length=1)
    max_volunteers: int = Field(config.DEFAULT_MAX_VOLUNTEERS, ge=1)

    @field_validator("date")
    @classmethod
    def normalize_date(cls, v: datetime) -> datetime:
        return _naive_utc(v)


class EventUpdate(CamelModel):
    title: Optional[str] = Field(None, min_length=config.EVENT_TITLE_MIN_LENGTH, max_length=config.EVENT_TITLE_MAX_LENGTH)
    description: Optional[str] = Field(None, max_length=config.EVENT_DESCRIPTION_MAX_LENGTH)
    date: Optional[datetime] = None
    location: Optional[str] = Field(None, min_length=1)
    max_volunteers: Optional[int] = Field(None, ge=1)

    @field_validator("date")
    @classmethod
    def normalize_date(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _naive_utc(v) if v is not None else v


# ===== Payment payloads =====

class PaymentInitiate(CamelModel):
    amount: int
    organization_id: str = Field(..., validation_alias=AliasChoices("organizationId", "ngoId", "organization_id"))
    event_id: Optional[str] = Field(None, validation_alias=AliasChoices("eventId", "event_id"))


class PaymentVerify(CamelModel):
    payment_id: Optional[str] = None
    order_id: Optional[str] = None
    donation_id: Optional[str] = None
