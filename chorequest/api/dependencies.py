"""
API dependencies for FastAPI endpoints.
Provides the request-scoped database session and the authenticated actor.
"""

import hmac
from typing import AsyncGenerator, Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

import structlog

from chorequest.auth.permissions import AuthenticatedUser
from chorequest.auth.tokens import verify_access_token
from chorequest.core.config import settings
from chorequest.core.database import get_async_session
from chorequest.core.exceptions import AuthenticationError, ConfigurationError
from chorequest.core.logging import bind_request_context
from chorequest.models.family import UserProfile


logger = structlog.get_logger(__name__)


# Security scheme for bearer tokens (user tokens and the cron secret)
bearer_scheme = HTTPBearer(auto_error=False)


async def get_database() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency. One request is one transaction."""
    async with get_async_session() as session:
        yield session


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_database)
) -> AuthenticatedUser:
    """Resolve the bearer token to the acting user profile."""
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Missing or invalid authorization header")

    try:
        token = verify_access_token(credentials.credentials)
    except AuthenticationError as e:
        logger.warning("Token verification failed", reason=e.message)
        raise AuthenticationError("Authentication failed", {"reason": e.message})

    profile = await db.get(UserProfile, token.user_id)
    if not profile:
        logger.warning("Token for unknown user", user_id=token.user_id)
        raise AuthenticationError("Authentication failed", {"reason": "Unknown user"})

    bind_request_context(user_id=profile.id, family_id=profile.family_id)
    return AuthenticatedUser.from_profile(profile)


async def require_cron_secret(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
) -> None:
    """Guard for scheduler-invoked endpoints."""
    if not settings.cron_secret:
        logger.error("CRON_SECRET not configured")
        raise ConfigurationError("Cron job not configured")

    if credentials is None or not hmac.compare_digest(
        credentials.credentials.encode(), settings.cron_secret.encode()
    ):
        logger.warning("Unauthorized cron request")
        raise AuthenticationError("Unauthorized")
