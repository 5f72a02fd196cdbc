"""One-time passcode model for email verification."""

from datetime import datetime

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from frishta.models.base import TimestampMixin


class OtpCode(TimestampMixin, SQLModel, table=True):
    """Latest OTP issued for an email address (one live record per email)."""

    __tablename__ = "otp_codes"

    email: str = Field(primary_key=True, max_length=255, description="Normalized email address")
    otp_hash: str = Field(max_length=64, description="SHA-256 of code and pepper")
    expires_at: datetime = Field(
        sa_type=DateTime(timezone=True),  # type: ignore[call-overload]
        description="OTP expiration time",
    )
    attempts: int = Field(default=0, description="Failed verification attempts")
