"""Bearer session model."""

from datetime import datetime

from sqlalchemy import DateTime
from sqlmodel import Field

from frishta.models.base import BaseModel


class AuthSession(BaseModel, table=True):
    """Login session keyed by the digest of its bearer token."""

    __tablename__ = "sessions"

    user_id: str = Field(
        foreign_key="users.id", ondelete="CASCADE", index=True, max_length=21
    )
    token_hash: str = Field(unique=True, index=True, max_length=64)
    user_agent: str = Field(default="", max_length=512)
    expires_at: datetime = Field(
        index=True,
        sa_type=DateTime(timezone=True),  # type: ignore[call-overload]
        description="Session expiration time",
    )
