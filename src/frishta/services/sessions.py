"""Opaque bearer session issuance, resolution and revocation."""

import hashlib
import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import delete, select

from frishta.config import SecurityConfig
from frishta.models import AuthSession
from frishta.utils.dates import as_utc, utcnow

logger = logging.getLogger(__name__)

TOKEN_BYTES = 48


def generate_token() -> str:
    """Generate a raw bearer token (48 random bytes, hex encoded)."""
    return secrets.token_hex(TOKEN_BYTES)


def hash_token(token: str) -> str:
    """Digest a raw bearer token; only the digest is ever stored."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class ResolvedSession:
    """Identity attached to a request by a valid bearer token."""

    user_id: str
    token_hash: str


class SessionManager:
    """Issues and validates sessions backed by hashed token storage.

    None of the methods commit; the caller owns the transaction.
    """

    def __init__(
        self,
        config: SecurityConfig,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.config = config
        self._clock = clock

    async def issue(
        self,
        session: AsyncSession,
        user_id: str,
        *,
        ttl_days: int | None = None,
        user_agent: str = "",
    ) -> str:
        """Create a session for ``user_id`` and return its raw token.

        The raw token is returned exactly once and cannot be recovered later.
        """
        token = generate_token()
        ttl = timedelta(days=ttl_days) if ttl_days is not None else self.config.session_ttl
        record = AuthSession(
            user_id=user_id,
            token_hash=hash_token(token),
            user_agent=user_agent[:512],
            expires_at=self._clock() + ttl,
        )
        session.add(record)
        await session.flush()
        logger.info(f"Issued session {record.id} for user {user_id}")
        return token

    async def resolve(self, session: AsyncSession, token: str) -> ResolvedSession | None:
        """Look up a raw token; ``None`` if unknown or expired.

        Expired rows are left in place for the maintenance cleanup.
        """
        token_hash = hash_token(token)
        stmt = select(AuthSession).where(AuthSession.token_hash == token_hash)
        result = await session.execute(stmt)
        record = result.scalar_one_or_none()

        if record is None or as_utc(record.expires_at) <= self._clock():
            return None

        return ResolvedSession(user_id=record.user_id, token_hash=token_hash)

    async def revoke(self, session: AsyncSession, token_hash: str) -> None:
        """Delete the session with ``token_hash``; revoking twice is a no-op."""
        await session.execute(delete(AuthSession).where(AuthSession.token_hash == token_hash))

    async def purge_expired(self, session: AsyncSession, *, dry_run: bool = False) -> int:
        """Remove sessions past their expiry (hygiene only)."""
        now = self._clock()
        if dry_run:
            count = await session.execute(
                select(func.count()).select_from(AuthSession).where(AuthSession.expires_at <= now)
            )
            return count.scalar_one()

        result = await session.execute(delete(AuthSession).where(AuthSession.expires_at <= now))
        return result.rowcount  # type: ignore[attr-defined]
