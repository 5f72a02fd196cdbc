"""One-time passcode issuance and verification for email ownership."""

import hashlib
import hmac
import logging
import secrets
from collections.abc import Callable
from datetime import datetime
from enum import Enum

from sqlalchemy import func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import delete, select

from frishta.config import SecurityConfig
from frishta.models import OtpCode
from frishta.services.store import upsert
from frishta.utils.dates import as_utc, utcnow

logger = logging.getLogger(__name__)

OTP_MIN = 100_000
OTP_MAX = 999_999


class OtpStatus(str, Enum):
    """Outcome of an OTP verification."""

    OK = "ok"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    TOO_MANY_ATTEMPTS = "too_many_attempts"
    MISMATCH = "mismatch"


def generate_code() -> str:
    """Generate a 6-digit code sampled uniformly from [100000, 999999]."""
    return str(OTP_MIN + secrets.randbelow(OTP_MAX - OTP_MIN + 1))


def hash_code(code: str, pepper: str) -> str:
    """Digest a code together with the server-side pepper."""
    return hashlib.sha256(f"{code}:{pepper}".encode()).hexdigest()


class OtpManager:
    """Stores at most one live OTP per email and verifies guesses against it.

    None of the methods commit; the caller owns the transaction.
    """

    def __init__(
        self,
        config: SecurityConfig,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.config = config
        self._clock = clock

    async def issue(self, session: AsyncSession, email: str) -> str:
        """Mint a code for ``email``, replacing any previous one.

        Returns:
            The plain code; only its digest is stored
        """
        code = generate_code()
        now = self._clock()
        await upsert(
            session,
            OtpCode,
            "email",
            {
                "email": email,
                "otp_hash": hash_code(code, self.config.otp_pepper),
                "expires_at": now + self.config.otp_ttl,
                "attempts": 0,
                "created_at": now,
                "updated_at": now,
            },
        )
        logger.info(f"Issued OTP for {email}")
        return code

    async def get(self, session: AsyncSession, email: str) -> OtpCode | None:
        stmt = (
            select(OtpCode)
            .where(OtpCode.email == email)
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def verify(self, session: AsyncSession, email: str, submitted: str) -> OtpStatus:
        """Check a submitted code for ``email``.

        The attempt ceiling is checked before the guess is spent, so exactly
        ``otp_max_attempts`` wrong guesses are allowed. A successful match
        deletes the record.
        """
        record = await self.get(session, email)
        if record is None:
            return OtpStatus.NOT_FOUND

        if self._clock() >= as_utc(record.expires_at):
            return OtpStatus.EXPIRED

        if record.attempts >= self.config.otp_max_attempts:
            return OtpStatus.TOO_MANY_ATTEMPTS

        submitted_hash = hash_code(str(submitted).strip(), self.config.otp_pepper)
        if not hmac.compare_digest(submitted_hash, record.otp_hash):
            # Guarded increment: never pushes the counter past the ceiling
            await session.execute(
                update(OtpCode)
                .where(
                    OtpCode.email == email,
                    OtpCode.attempts < self.config.otp_max_attempts,
                )
                .values(attempts=OtpCode.attempts + 1, updated_at=self._clock())
                .execution_options(synchronize_session=False)
            )
            logger.info(f"OTP mismatch for {email} (attempt {record.attempts + 1})")
            return OtpStatus.MISMATCH

        await session.execute(delete(OtpCode).where(OtpCode.email == email))
        return OtpStatus.OK

    async def purge_expired(self, session: AsyncSession, *, dry_run: bool = False) -> int:
        """Remove OTP records past their expiry (hygiene only)."""
        now = self._clock()
        if dry_run:
            count = await session.execute(
                select(func.count()).select_from(OtpCode).where(OtpCode.expires_at <= now)
            )
            return count.scalar_one()

        result = await session.execute(delete(OtpCode).where(OtpCode.expires_at <= now))
        return result.rowcount  # type: ignore[attr-defined]
