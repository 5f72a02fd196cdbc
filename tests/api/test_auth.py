"""Auth API tests."""

import asyncio
from collections.abc import Callable
from dataclasses import replace
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest
from httpx import AsyncClient

from frishta.config import settings
from frishta.services.registration import RegistrationFlow
from tests.conftest import TEST_PASSWORD, AuthenticatedClient, registration_payload, sent_otp


@pytest.mark.asyncio
async def test_full_registration_journey(
    client: AsyncClient, flow: RegistrationFlow, mail_backend: AsyncMock
):
    """Register, verify, log in, read profile, log out."""
    response = await client.post("/api/auth/register/start", json=registration_payload())
    assert response.status_code == 200
    data = response.json()
    assert data == {"message": "OTP generated. Please check your email.", "email_queued": True}

    await flow.notifier.drain()
    code = sent_otp(mail_backend, to="listener@example.com")

    response = await client.post(
        "/api/auth/register/verify",
        json={"email": "listener@example.com", "otp": code},
    )
    assert response.status_code == 200
    assert response.json()["message"] == "Email verified. You can now login."

    response = await client.post(
        "/api/auth/login",
        json={"email": "listener@example.com", "password": TEST_PASSWORD},
    )
    assert response.status_code == 200
    data = response.json()
    token = data["token"]
    assert data["token_type"] == "bearer"
    assert data["user"]["email"] == "listener@example.com"
    assert "password_hash" not in data["user"]

    headers = {"Authorization": f"Bearer {token}"}
    response = await client.get("/api/auth/me", headers=headers)
    assert response.status_code == 200
    user = response.json()["user"]
    assert user["full_name"] == "Test Listener"
    assert user["categories"] == ["Pop", "Jazz", "Rock"]
    assert user["is_email_verified"] is True
    assert "password_salt" not in user

    response = await client.post("/api/auth/logout", headers=headers)
    assert response.status_code == 200
    assert response.json() == {"message": "Logged out"}

    response = await client.get("/api/auth/me", headers=headers)
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_verify_accepts_numeric_otp(client: AsyncClient):
    with patch("frishta.services.otp.generate_code", return_value="482913"):
        response = await client.post("/api/auth/register/start", json=registration_payload())
    assert response.status_code == 200

    response = await client.post(
        "/api/auth/register/verify",
        json={"email": "LISTENER@example.com", "otp": 482913},
    )
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_otp_exposed_only_when_enabled(client: AsyncClient, monkeypatch):
    monkeypatch.setattr(settings, "expose_otp_in_response", True)

    with patch("frishta.services.otp.generate_code", return_value="482913"):
        response = await client.post("/api/auth/register/start", json=registration_payload())

    assert response.status_code == 200
    assert response.json()["otp"] == "482913"


class TestRegisterStart:
    """Tests for POST /api/auth/register/start."""

    @pytest.mark.asyncio
    async def test_invalid_field(self, client: AsyncClient):
        response = await client.post(
            "/api/auth/register/start",
            json=registration_payload(categories=["Pop", "Jazz"]),
        )
        assert response.status_code == 400
        assert response.json()["code"] == "category_count"
        assert response.json()["detail"] == "Please select exactly 3 categories"

    @pytest.mark.asyncio
    async def test_missing_fields(self, client: AsyncClient):
        response = await client.post("/api/auth/register/start", json={"email": "a@example.com"})
        assert response.status_code == 400
        assert response.json()["code"] == "missing_fields"

    @pytest.mark.asyncio
    async def test_malformed_body(self, client: AsyncClient):
        response = await client.post(
            "/api/auth/register/start",
            json=registration_payload(categories="Pop"),
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_already_registered(
        self, client: AsyncClient, make_user: Callable[..., Any]
    ):
        await make_user(email="listener@example.com")

        response = await client.post("/api/auth/register/start", json=registration_payload())
        assert response.status_code == 409
        assert response.json()["code"] == "already_registered"


class TestRegisterVerify:
    """Tests for POST /api/auth/register/verify."""

    @pytest.mark.asyncio
    async def test_missing_code_counts_as_wrong_guess(
        self, client: AsyncClient, flow: RegistrationFlow, session
    ):
        await client.post("/api/auth/register/start", json=registration_payload())

        response = await client.post(
            "/api/auth/register/verify", json={"email": "listener@example.com"}
        )

        assert response.status_code == 400
        assert response.json()["code"] == "otp_invalid"
        record = await flow.otp.get(session, "listener@example.com")
        assert record.attempts == 1

    @pytest.mark.asyncio
    async def test_unknown_user(self, client: AsyncClient):
        response = await client.post(
            "/api/auth/register/verify",
            json={"email": "ghost@example.com", "otp": "123456"},
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_wrong_code_then_lockout(self, client: AsyncClient):
        with patch("frishta.services.otp.generate_code", return_value="482913"):
            await client.post("/api/auth/register/start", json=registration_payload())

        for _ in range(5):
            response = await client.post(
                "/api/auth/register/verify",
                json={"email": "listener@example.com", "otp": "000000"},
            )
            assert response.status_code == 400
            assert response.json()["code"] == "otp_invalid"

        response = await client.post(
            "/api/auth/register/verify",
            json={"email": "listener@example.com", "otp": "482913"},
        )
        assert response.status_code == 429

        # A fresh code clears the lockout
        with patch("frishta.services.otp.generate_code", return_value="135790"):
            response = await client.post(
                "/api/auth/register/resend", json={"email": "listener@example.com"}
            )
        assert response.status_code == 200

        response = await client.post(
            "/api/auth/register/verify",
            json={"email": "listener@example.com", "otp": "135790"},
        )
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_code_is_single_use(self, client: AsyncClient):
        with patch("frishta.services.otp.generate_code", return_value="482913"):
            await client.post("/api/auth/register/start", json=registration_payload())

        body = {"email": "listener@example.com", "otp": "482913"}
        assert (await client.post("/api/auth/register/verify", json=body)).status_code == 200

        response = await client.post("/api/auth/register/verify", json=body)
        assert response.status_code == 400
        assert response.json()["code"] == "otp_invalid_or_expired"


class TestRegisterResend:
    """Tests for POST /api/auth/register/resend."""

    @pytest.mark.asyncio
    async def test_resend(self, client: AsyncClient, flow: RegistrationFlow, mail_backend):
        await client.post("/api/auth/register/start", json=registration_payload())

        response = await client.post(
            "/api/auth/register/resend", json={"email": "listener@example.com"}
        )

        assert response.status_code == 200
        assert response.json()["message"] == "New OTP generated. Please check your email."
        assert "otp" not in response.json()
        await flow.notifier.drain()
        assert mail_backend.send.call_count == 2

    @pytest.mark.asyncio
    async def test_resend_unknown(self, client: AsyncClient):
        response = await client.post(
            "/api/auth/register/resend", json={"email": "ghost@example.com"}
        )
        assert response.status_code == 404


class TestLogin:
    """Tests for POST /api/auth/login."""

    @pytest.mark.asyncio
    async def test_wrong_password(self, client: AsyncClient, make_user: Callable[..., Any]):
        await make_user()

        response = await client.post(
            "/api/auth/login",
            json={"email": "member@example.com", "password": "nope"},
        )
        assert response.status_code == 401
        assert response.json()["code"] == "invalid_credentials"

    @pytest.mark.asyncio
    async def test_unverified(self, client: AsyncClient, make_user: Callable[..., Any]):
        await make_user(verified=False)

        response = await client.post(
            "/api/auth/login",
            json={"email": "member@example.com", "password": TEST_PASSWORD},
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_unknown_email(self, client: AsyncClient):
        response = await client.post(
            "/api/auth/login",
            json={"email": "ghost@example.com", "password": TEST_PASSWORD},
        )
        assert response.status_code == 401


class TestSessionGate:
    """Tests for bearer-token protected endpoints."""

    @pytest.mark.asyncio
    async def test_stalled_lookup_is_server_error(
        self, authenticated_client: AuthenticatedClient, flow: RegistrationFlow
    ):
        flow.config = replace(flow.config, store_timeout_seconds=0.01)

        async def stalled(*args, **kwargs):
            await asyncio.sleep(10)

        with patch.object(flow.sessions, "resolve", side_effect=stalled):
            response = await authenticated_client.get("/api/auth/me")

        assert response.status_code == 500
        assert response.json() == {"detail": "Server error", "code": "server_error"}

    @pytest.mark.asyncio
    async def test_me_without_token(self, client: AsyncClient):
        response = await client.get("/api/auth/me")
        assert response.status_code == 401
        assert response.json()["detail"] == "Missing token"

    @pytest.mark.asyncio
    async def test_me_with_bogus_token(self, client: AsyncClient):
        response = await client.get(
            "/api/auth/me", headers={"Authorization": "Bearer not-a-real-token"}
        )
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid session"

    @pytest.mark.asyncio
    async def test_me_with_wrong_scheme(self, client: AsyncClient):
        response = await client.get("/api/auth/me", headers={"Authorization": "Token abc"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_me(self, authenticated_client: AuthenticatedClient):
        response = await authenticated_client.get("/api/auth/me")
        assert response.status_code == 200
        assert response.json()["user"]["email"] == "member@example.com"

    @pytest.mark.asyncio
    async def test_logout_twice(self, authenticated_client: AuthenticatedClient):
        assert (await authenticated_client.post("/api/auth/logout")).status_code == 200
        assert (await authenticated_client.post("/api/auth/logout")).status_code == 401

    @pytest.mark.asyncio
    async def test_logout_requires_token(self, client: AsyncClient):
        response = await client.post("/api/auth/logout")
        assert response.status_code == 401
