"""User model."""

from datetime import datetime

from sqlalchemy import JSON
from sqlmodel import Field, SQLModel

from frishta.models.base import BaseModel


class User(BaseModel, table=True):
    """User account model.

    ``password_hash``/``password_salt`` are never exposed; use ``UserRead``
    for anything that leaves the service.
    """

    __tablename__ = "users"

    full_name: str = Field(max_length=255)
    email: str = Field(unique=True, index=True, max_length=255)
    phone_no: str = Field(max_length=32)
    country: str = Field(max_length=255)
    state: str = Field(max_length=255)
    gender: str = Field(max_length=16)
    age: int
    categories: list[str] = Field(
        default_factory=list,
        sa_type=JSON,  # type: ignore[call-overload]
        description="Canonical music categories chosen at registration",
    )
    role: str = Field(max_length=16)
    password_hash: str = Field(max_length=128)
    password_salt: str = Field(max_length=64)
    is_email_verified: bool = Field(default=False)


class UserRead(SQLModel):
    """Schema for reading a user."""

    id: str
    full_name: str
    email: str
    role: str
    phone_no: str
    country: str
    state: str
    gender: str
    age: int
    categories: list[str]
    is_email_verified: bool
    created_at: datetime
