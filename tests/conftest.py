"""Pytest configuration and fixtures."""

import os
from collections.abc import AsyncGenerator, Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

# Set test environment before importing app
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from frishta.api.deps import get_registration_flow, get_song_catalog
from frishta.config import SecurityConfig, settings
from frishta.database import get_session
from frishta.main import app
from frishta.models import User
from frishta.services.catalog import SongCatalog
from frishta.services.credentials import CredentialHasher
from frishta.services.email import EmailService
from frishta.services.notifications import Notifier
from frishta.services.otp import OtpManager
from frishta.services.registration import RegistrationFlow
from frishta.services.sessions import SessionManager

TEST_PEPPER = "test-pepper-0123456789"
TEST_PASSWORD = "correct horse battery staple"

# Keep password hashing fast in tests; production enforces >= 100k iterations
TEST_ITERATIONS = 1_000


class FakeClock:
    """Controllable replacement for ``utcnow``."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: Any) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def security_config() -> SecurityConfig:
    return SecurityConfig(otp_pepper=TEST_PEPPER, password_iterations=TEST_ITERATIONS)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def test_engine():
    """Create a fresh in-memory database per test."""
    engine = create_async_engine(
        settings.database_url_test,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
async def session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async_session_factory = async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with async_session_factory() as session:
        yield session


@pytest.fixture
def mail_backend() -> AsyncMock:
    """Email backend double that records every send."""
    backend = AsyncMock()
    backend.send.return_value = True
    return backend


@pytest.fixture
def media_root(tmp_path: Path) -> Path:
    """Media directory with a few songs and one matching thumbnail."""
    songs = tmp_path / "songs"
    thumbnails = tmp_path / "thumbnails"
    songs.mkdir()
    thumbnails.mkdir()
    for name in ("first_song.mp3", "second-song.wav", "third song.ogg", "notes.txt"):
        (songs / name).write_bytes(b"")
    (thumbnails / "first_song.png").write_bytes(b"")
    return tmp_path


@pytest.fixture
def notifier() -> Notifier:
    return Notifier(timeout=5.0)


@pytest.fixture
def flow(
    security_config: SecurityConfig,
    mail_backend: AsyncMock,
    media_root: Path,
    notifier: Notifier,
) -> RegistrationFlow:
    """Registration flow wired to test doubles."""
    return RegistrationFlow(
        security_config,
        email=EmailService(backend=mail_backend),
        catalog=SongCatalog(media_root),
        notifier=notifier,
        hasher=CredentialHasher(TEST_ITERATIONS),
        otp=OtpManager(security_config),
        sessions=SessionManager(security_config),
    )


@pytest.fixture
async def client(
    session: AsyncSession,
    flow: RegistrationFlow,
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client."""

    async def override_get_session():
        yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_registration_flow] = lambda: flow
    app.dependency_overrides[get_song_catalog] = lambda: flow.catalog

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    await flow.notifier.drain()
    app.dependency_overrides.clear()


def registration_payload(**overrides: Any) -> dict[str, Any]:
    """Valid registration body; override individual fields per test."""
    payload: dict[str, Any] = {
        "full_name": "Test Listener",
        "email": "listener@example.com",
        "password": TEST_PASSWORD,
        "role": "listener",
        "phone_no": "+1 555-123-4567",
        "country": "USA",
        "state": "CA",
        "gender": "female",
        "age": 17,
        "categories": ["Pop", "Jazz", "Rock"],
    }
    payload.update(overrides)
    return payload


def sent_otp(mail_backend: AsyncMock, to: str | None = None) -> str:
    """Pull the code out of the most recent OTP email."""
    for call in reversed(mail_backend.send.call_args_list):
        kwargs = call.kwargs
        if "OTP" in kwargs["subject"] and (to is None or kwargs["to"] == to):
            return kwargs["text"].split("OTP is ")[1][:6]
    raise AssertionError("no OTP email was sent")


@pytest.fixture
def make_user(
    session: AsyncSession,
    security_config: SecurityConfig,
) -> Callable[..., Any]:
    """Factory inserting a user directly, bypassing the registration flow."""
    hasher = CredentialHasher(security_config.password_iterations)

    async def _make_user(
        email: str = "member@example.com",
        *,
        password: str = TEST_PASSWORD,
        verified: bool = True,
    ) -> User:
        credential = hasher.derive(password)
        user = User(
            full_name="Member",
            email=email,
            phone_no="+44 20 7946 0000",
            country="UK",
            state="London",
            gender="other",
            age=30,
            categories=["Pop", "Jazz", "Rock"],
            role="artist",
            password_hash=credential.hash,
            password_salt=credential.salt,
            is_email_verified=verified,
        )
        session.add(user)
        await session.commit()
        return user

    return _make_user


# Helper to make authenticated requests
class AuthenticatedClient:
    """Wrapper for AsyncClient with authentication."""

    def __init__(self, client: AsyncClient, token: str):
        self.client = client
        self.token = token
        self.headers = {"Authorization": f"Bearer {token}"}

    async def get(self, url: str, **kwargs: Any) -> Any:
        kwargs.setdefault("headers", {}).update(self.headers)
        return await self.client.get(url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> Any:
        kwargs.setdefault("headers", {}).update(self.headers)
        return await self.client.post(url, **kwargs)


@pytest.fixture
async def authenticated_client(
    client: AsyncClient,
    make_user: Callable[..., Any],
) -> AuthenticatedClient:
    """Log a verified user in through the API."""
    user = await make_user()
    response = await client.post(
        "/api/auth/login",
        json={"email": user.email, "password": TEST_PASSWORD},
    )
    assert response.status_code == 200
    return AuthenticatedClient(client, response.json()["token"])
