"""Registration state machine: pending -> OTP-verified -> active, plus login/logout."""

import asyncio
import logging
from collections.abc import AsyncGenerator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

from email_validator import EmailNotValidError, validate_email
from fastapi.concurrency import run_in_threadpool
from sqlalchemy import false, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from frishta.config import SecurityConfig
from frishta.constants import (
    GENDERS,
    MAX_AGE,
    MIN_AGE,
    PHONE_PATTERN,
    REQUIRED_CATEGORY_COUNT,
    ROLES,
)
from frishta.exceptions import (
    AuthError,
    ConflictError,
    DependencyError,
    EmailNotVerifiedError,
    NotFoundError,
    RateLimitError,
    ValidationError,
)
from frishta.models import User, UserRead
from frishta.models.base import generate_nanoid
from frishta.services.catalog import SongCatalog, canonicalize_category, songs_for_categories
from frishta.services.credentials import CredentialHasher
from frishta.services.email import EmailService
from frishta.services.notifications import Notifier
from frishta.services.otp import OtpManager, OtpStatus
from frishta.services.sessions import ResolvedSession, SessionManager
from frishta.services.store import normalize_email, upsert
from frishta.utils.dates import utcnow

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = (
    "full_name",
    "email",
    "password",
    "role",
    "phone_no",
    "country",
    "state",
    "gender",
)


@dataclass
class RegistrationForm:
    """Raw registration input as submitted by the client."""

    full_name: str | None = None
    email: str | None = None
    password: str | None = None
    role: str | None = None
    phone_no: str | None = None
    country: str | None = None
    state: str | None = None
    gender: str | None = None
    age: Any = None
    categories: Sequence[Any] | None = None


@dataclass(frozen=True)
class Profile:
    """Registration input after validation and normalization."""

    full_name: str
    email: str
    password: str
    role: str
    phone_no: str
    country: str
    state: str
    gender: str
    age: int
    categories: list[str]


@dataclass(frozen=True)
class LoginResult:
    token: str
    user: UserRead


def _parse_age(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    return None


def validate_registration(form: RegistrationForm) -> Profile:
    """Check every business rule, raising on the first one that fails."""
    if any(not getattr(form, name) for name in REQUIRED_FIELDS) or form.age is None:
        raise ValidationError("fields", "Missing fields", code="missing_fields")

    email = normalize_email(form.email)
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError as e:
        raise ValidationError("email", "Invalid email", code="invalid_email") from e

    if form.role not in ROLES:
        raise ValidationError("role", "Invalid role", code="invalid_role")

    gender = str(form.gender).strip().lower()
    if gender not in GENDERS:
        raise ValidationError("gender", "Invalid gender", code="invalid_gender")

    age = _parse_age(form.age)
    if age is None or not MIN_AGE <= age <= MAX_AGE:
        raise ValidationError("age", "Invalid age", code="invalid_age")

    phone_no = str(form.phone_no).strip()
    if not PHONE_PATTERN.match(phone_no):
        raise ValidationError("phone_no", "Invalid phone number", code="invalid_phone")

    country = str(form.country).strip()
    state = str(form.state).strip()
    if not country or not state:
        raise ValidationError(
            "country", "Country and state are required", code="missing_location"
        )

    submitted = list(form.categories) if isinstance(form.categories, list | tuple) else []
    canonical = [canonicalize_category(category) for category in submitted]
    if any(category is None for category in canonical):
        raise ValidationError(
            "categories", "One or more categories are invalid", code="invalid_category"
        )

    distinct = list(dict.fromkeys(canonical))
    if len(distinct) != REQUIRED_CATEGORY_COUNT:
        raise ValidationError(
            "categories",
            f"Please select exactly {REQUIRED_CATEGORY_COUNT} categories",
            code="category_count",
        )
    if len(canonical) != len(distinct):
        raise ValidationError(
            "categories", "Duplicate categories are not allowed", code="duplicate_categories"
        )

    return Profile(
        full_name=str(form.full_name).strip(),
        email=email,
        password=str(form.password),
        role=str(form.role),
        phone_no=phone_no,
        country=country,
        state=state,
        gender=gender,
        age=age,
        categories=distinct,  # type: ignore[arg-type]
    )


class RegistrationFlow:
    """Sequences credential hashing, OTP issuance and session creation.

    Store writes for a step are committed before any notification is
    scheduled; notifications run detached and never affect the result.
    """

    def __init__(
        self,
        config: SecurityConfig,
        *,
        email: EmailService,
        catalog: SongCatalog,
        notifier: Notifier,
        hasher: CredentialHasher | None = None,
        otp: OtpManager | None = None,
        sessions: SessionManager | None = None,
    ) -> None:
        self.config = config
        self.email = email
        self.catalog = catalog
        self.notifier = notifier
        self.hasher = hasher or CredentialHasher(config.password_iterations)
        self.otp = otp or OtpManager(config)
        self.sessions = sessions or SessionManager(config)

    @asynccontextmanager
    async def _store(self, session: AsyncSession) -> AsyncGenerator[None, None]:
        """Bound store work by the configured timeout and map failures to DependencyError."""
        try:
            async with asyncio.timeout(self.config.store_timeout_seconds):
                yield
        except (SQLAlchemyError, TimeoutError) as e:
            logger.error(f"Record store failure: {e!r}")
            await session.rollback()
            raise DependencyError() from e

    async def get_user_by_email(self, session: AsyncSession, email: str) -> User | None:
        stmt = (
            select(User)
            .where(User.email == email)
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_user(self, session: AsyncSession, user_id: str) -> UserRead:
        async with self._store(session):
            user = await session.get(User, user_id, populate_existing=True)
        if user is None:
            raise NotFoundError("User not found")
        return UserRead.model_validate(user)

    async def resolve_session(self, session: AsyncSession, token: str) -> ResolvedSession | None:
        """Look up a bearer token under the store timeout."""
        async with self._store(session):
            return await self.sessions.resolve(session, token)

    async def start(self, session: AsyncSession, form: RegistrationForm) -> str:
        """Validate, store a pending identity and issue its first OTP.

        Returns:
            The plain OTP (the caller decides whether it may be exposed)
        """
        profile = validate_registration(form)

        async with self._store(session):
            existing = await self.get_user_by_email(session, profile.email)
        if existing is not None and existing.is_email_verified:
            raise ConflictError("Email already registered")

        credential = await run_in_threadpool(self.hasher.derive, profile.password)
        now = utcnow()

        async with self._store(session):
            written = await upsert(
                session,
                User,
                "email",
                {
                    "id": generate_nanoid(),
                    "full_name": profile.full_name,
                    "email": profile.email,
                    "role": profile.role,
                    "phone_no": profile.phone_no,
                    "country": profile.country,
                    "state": profile.state,
                    "gender": profile.gender,
                    "age": profile.age,
                    "categories": profile.categories,
                    "password_hash": credential.hash,
                    "password_salt": credential.salt,
                    "is_email_verified": False,
                    "created_at": now,
                    "updated_at": now,
                },
                where=User.__table__.c.is_email_verified == false(),  # type: ignore[attr-defined]
            )
            if not written:
                # Verified between our read and the guarded write
                await session.rollback()
                raise ConflictError("Email already registered")

            code = await self.otp.issue(session, profile.email)
            await session.commit()

        logger.info(f"Registration started for {profile.email}")
        self._send_otp(profile.email, code)
        return code

    async def resend(self, session: AsyncSession, email: str | None) -> str:
        """Issue a fresh OTP for a pending identity, invalidating the previous one."""
        email = normalize_email(email)
        if not email:
            raise ValidationError("email", "Email is required", code="missing_fields")

        async with self._store(session):
            user = await self.get_user_by_email(session, email)
            if user is None:
                raise NotFoundError("User not found. Please register first.")
            if user.is_email_verified:
                raise ValidationError(
                    "email", "Email is already verified", code="already_verified"
                )

            code = await self.otp.issue(session, email)
            await session.commit()

        self._send_otp(email, code)
        return code

    async def confirm(
        self,
        session: AsyncSession,
        email: str | None,
        code: str,
        *,
        base_url: str = "",
    ) -> None:
        """Verify the OTP and flip the identity to verified."""
        email = normalize_email(email)

        async with self._store(session):
            user = await self.get_user_by_email(session, email)
            if user is None:
                raise NotFoundError("User not found")

            status = await self.otp.verify(session, email, code)
            if status is OtpStatus.MISMATCH:
                # Persist the spent attempt before reporting the failure
                await session.commit()
                raise ValidationError("otp", "Invalid OTP", code="otp_invalid")
            if status in (OtpStatus.NOT_FOUND, OtpStatus.EXPIRED):
                raise ValidationError(
                    "otp", "OTP is invalid or expired", code="otp_invalid_or_expired"
                )
            if status is OtpStatus.TOO_MANY_ATTEMPTS:
                raise RateLimitError("Too many attempts. Please request a new OTP.")

            await session.execute(
                update(User)
                .where(User.email == email)
                .values(is_email_verified=True, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            await session.commit()

        logger.info(f"Email verified for {email}")
        self.notifier.schedule(
            f"Welcome email to {email}",
            self._send_welcome(email, user.full_name, list(user.categories), base_url),
        )

    async def login(
        self,
        session: AsyncSession,
        email: str | None,
        password: str | None,
        *,
        user_agent: str = "",
    ) -> LoginResult:
        """Check credentials for a verified identity and open a session."""
        email = normalize_email(email)

        async with self._store(session):
            user = await self.get_user_by_email(session, email)
        if user is None:
            raise AuthError("Invalid credentials", code="invalid_credentials")
        if not user.is_email_verified:
            raise EmailNotVerifiedError("Email not verified")

        ok = await run_in_threadpool(
            self.hasher.verify, password or "", user.password_salt, user.password_hash
        )
        if not ok:
            raise AuthError("Invalid credentials", code="invalid_credentials")

        async with self._store(session):
            token = await self.sessions.issue(session, user.id, user_agent=user_agent)
            await session.commit()

        return LoginResult(token=token, user=UserRead.model_validate(user))

    async def logout(self, session: AsyncSession, token_hash: str) -> None:
        async with self._store(session):
            await self.sessions.revoke(session, token_hash)
            await session.commit()

    def _send_otp(self, email: str, code: str) -> None:
        self.notifier.schedule(f"OTP email to {email}", self.email.send_otp(email, code))

    async def _send_welcome(
        self,
        email: str,
        name: str,
        categories: list[str],
        base_url: str,
    ) -> bool:
        canonical = [c for c in (canonicalize_category(c) for c in categories) if c]
        selected = canonical or [c.strip() for c in categories if c and c.strip()]
        songs = songs_for_categories(await self.catalog.list_songs(base_url), selected)
        return await self.email.send_welcome(email, name, selected, songs)
