"""SQLModel database models."""

from frishta.models.base import BaseModel, TimestampMixin
from frishta.models.otp_code import OtpCode
from frishta.models.session import AuthSession
from frishta.models.user import User, UserRead

__all__ = [
    "AuthSession",
    "BaseModel",
    "OtpCode",
    "TimestampMixin",
    "User",
    "UserRead",
]
