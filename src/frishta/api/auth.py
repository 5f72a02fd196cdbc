"""Registration, login and session endpoints."""

from typing import Annotated

from fastapi import APIRouter, Header
from pydantic import BaseModel

from frishta.api.deps import AuthContext, PublicBaseUrl, RegistrationFlowDep, SessionDep
from frishta.config import settings
from frishta.models import UserRead
from frishta.services.registration import RegistrationForm

router = APIRouter()


class RegisterStartRequest(BaseModel):
    """Request body for starting a registration.

    Fields are loosely typed so that business-rule failures are reported as
    400 with a field-specific message instead of a schema error.
    """

    full_name: str | None = None
    email: str | None = None
    password: str | None = None
    role: str | None = None
    phone_no: str | None = None
    country: str | None = None
    state: str | None = None
    gender: str | None = None
    age: int | float | str | None = None
    categories: list[str] | None = None


class OtpIssuedResponse(BaseModel):
    """Response after an OTP has been issued."""

    message: str
    email_queued: bool = True
    # Only populated when EXPOSE_OTP_IN_RESPONSE is enabled
    otp: str | None = None


class VerifyRequest(BaseModel):
    """Request body for OTP verification."""

    email: str | None = None
    otp: str | int | None = None


class ResendRequest(BaseModel):
    email: str | None = None


class LoginRequest(BaseModel):
    """Request body for login."""

    email: str | None = None
    password: str | None = None


class LoginResponse(BaseModel):
    """Response containing the bearer token.

    The token is only ever returned here; it cannot be retrieved again.
    """

    token: str
    token_type: str = "bearer"
    user: UserRead


class MeResponse(BaseModel):
    user: UserRead


class MessageResponse(BaseModel):
    message: str


def _otp_response(message: str, code: str) -> OtpIssuedResponse:
    response = OtpIssuedResponse(message=message)
    if settings.expose_otp_in_response:
        response.otp = code
    return response


@router.post("/register/start", response_model=OtpIssuedResponse, response_model_exclude_none=True)
async def register_start(
    request: RegisterStartRequest,
    session: SessionDep,
    flow: RegistrationFlowDep,
):
    """
    Start a registration.

    Stores a pending account and emails a one-time code. Re-submitting an
    unverified email replaces the pending profile.
    """
    code = await flow.start(session, RegistrationForm(**request.model_dump()))
    return _otp_response("OTP generated. Please check your email.", code)


@router.post("/register/verify", response_model=MessageResponse)
async def register_verify(
    request: VerifyRequest,
    session: SessionDep,
    flow: RegistrationFlowDep,
    base_url: PublicBaseUrl,
):
    """Verify the emailed code and activate the account."""
    code = "" if request.otp is None else str(request.otp)
    await flow.confirm(session, request.email, code, base_url=base_url)
    return MessageResponse(message="Email verified. You can now login.")


@router.post("/register/resend", response_model=OtpIssuedResponse, response_model_exclude_none=True)
async def register_resend(
    request: ResendRequest,
    session: SessionDep,
    flow: RegistrationFlowDep,
):
    """Issue a new code for a pending account, invalidating the previous one."""
    code = await flow.resend(session, request.email)
    return _otp_response("New OTP generated. Please check your email.", code)


@router.post("/login", response_model=LoginResponse)
async def login(
    request: LoginRequest,
    session: SessionDep,
    flow: RegistrationFlowDep,
    user_agent: Annotated[str, Header()] = "",
):
    """Exchange email and password for a bearer token."""
    result = await flow.login(session, request.email, request.password, user_agent=user_agent)
    return LoginResponse(token=result.token, user=result.user)


@router.get("/me", response_model=MeResponse)
async def get_current_user_info(
    auth: AuthContext,
    session: SessionDep,
    flow: RegistrationFlowDep,
):
    """Get current authenticated user info."""
    user = await flow.get_user(session, auth.user_id)
    return MeResponse(user=user)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    auth: AuthContext,
    session: SessionDep,
    flow: RegistrationFlowDep,
):
    """Revoke the session behind the presented token."""
    await flow.logout(session, auth.token_hash)
    return MessageResponse(message="Logged out")
