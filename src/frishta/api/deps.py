"""FastAPI dependencies for dependency injection."""

import logging
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from frishta.config import SecurityConfig, settings
from frishta.database import get_session
from frishta.services.catalog import SongCatalog, song_catalog
from frishta.services.email import email_service
from frishta.services.notifications import notifier
from frishta.services.registration import RegistrationFlow
from frishta.services.sessions import ResolvedSession

logger = logging.getLogger(__name__)

# Type alias for database session dependency
SessionDep = Annotated[AsyncSession, Depends(get_session)]

# Security scheme
security = HTTPBearer(auto_error=False)


@lru_cache
def get_registration_flow() -> RegistrationFlow:
    """Build the registration flow from settings once per process."""
    return RegistrationFlow(
        SecurityConfig.from_settings(settings),
        email=email_service,
        catalog=song_catalog,
        notifier=notifier,
    )


def get_song_catalog() -> SongCatalog:
    return song_catalog


RegistrationFlowDep = Annotated[RegistrationFlow, Depends(get_registration_flow)]
SongCatalogDep = Annotated[SongCatalog, Depends(get_song_catalog)]


async def get_auth_context(
    session: SessionDep,
    flow: RegistrationFlowDep,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> ResolvedSession:
    """Resolve the bearer token to a live session or raise 401."""
    if not credentials or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    resolved = await flow.resolve_session(session, credentials.credentials)
    if resolved is None:
        logger.debug("Bearer token did not match a live session")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid session",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return resolved


# Type aliases for common dependencies
AuthContext = Annotated[ResolvedSession, Depends(get_auth_context)]


def get_public_base_url(request: Request) -> str:
    """Public URL prefix for media links: configured, or derived from the request."""
    if settings.public_base_url:
        return settings.public_base_url.rstrip("/")
    return str(request.base_url).rstrip("/")


PublicBaseUrl = Annotated[str, Depends(get_public_base_url)]
