from datetime import datetime, timezone
from enum import Enum
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_serializer
from pydantic.alias_generators import to_camel

from .models import UserRole

T = TypeVar("T")


def isoformat_utc(value: datetime) -> str:
    """Render a timestamp as UTC ISO-8601 with millisecond precision."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


class WireModel(BaseModel):
    """Base for response models serialized with camelCase keys."""

    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class SortBy(str, Enum):
    """Columns a contact list can be ordered by."""

    NAME = "name"
    EMAIL = "email"
    CREATED_AT = "createdAt"


class SortOrder(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


class RegisterRequest(BaseModel):
    """Payload for creating a new account."""

    email: EmailStr
    password: str = Field(min_length=6, max_length=72)


class LoginRequest(BaseModel):
    """Credentials submitted to the login endpoint."""

    email: EmailStr
    password: str


class UserPublic(BaseModel):
    """Public identity fields returned with a token."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    role: UserRole


class AuthResponse(BaseModel):
    """Signed token plus the public identity it was issued for."""

    access_token: str
    token_type: str = "bearer"
    user: UserPublic


class TokenData(BaseModel):
    """Payload stored inside JWT token."""

    sub: str
    email: str
    role: UserRole
    exp: Optional[datetime] = None


class UserOut(WireModel):
    """User record as exposed by the API; never carries the password hash."""

    id: str
    email: str
    role: UserRole
    created_at: datetime
    updated_at: datetime

    @field_serializer("created_at", "updated_at")
    def _serialize_ts(self, value: datetime) -> str:
        return isoformat_utc(value)


class RoleUpdate(BaseModel):
    """Request body for changing a user's role."""

    role: UserRole


class ContactOut(WireModel):
    """Contact record returned to owners and admins."""

    id: str
    name: str
    email: str
    phone: str
    photo: Optional[str] = None
    owner_id: str
    created_at: datetime
    updated_at: datetime

    @field_serializer("created_at", "updated_at")
    def _serialize_ts(self, value: datetime) -> str:
        return isoformat_utc(value)


class AdminContactOut(ContactOut):
    """Contact annotated with its owner's email and display name."""

    owner_email: Optional[str] = None
    owner_name: Optional[str] = None


class Page(WireModel, Generic[T]):
    """One page of a listing."""

    items: List[T]
    total: int
    page: int
    limit: int
    total_pages: int


class Stats(WireModel):
    total_users: int
    total_contacts: int


class Envelope(BaseModel, Generic[T]):
    """Uniform wrapper for non-paginated successful responses."""

    success: bool = True
    data: Optional[T] = None
    message: str
    timestamp: str


class ErrorResponse(WireModel):
    """Uniform wrapper for failures."""

    success: bool = False
    error: str
    status_code: int
