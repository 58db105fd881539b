"""FastAPI dependencies for database, authentication, and outbound integrations."""

import hmac
from functools import lru_cache
from typing import AsyncGenerator, Optional

from fastapi import Depends, Header
from jwt import PyJWTError
from sqlalchemy.ext.asyncio import AsyncSession

from ..payments import PaymentGatewayRegistry, build_gateway_registry
from ..services.email_transport import EmailTransport, build_email_transport
from ..services.notification_service import NotificationService
from .auth import Principal, decode_access_token
from .config import settings
from .database import get_async_session
from .exceptions import AuthenticationError, PermissionDeniedError


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Database dependency that provides async database sessions.

    Yields:
        AsyncSession: Database session
    """
    async for session in get_async_session():
        yield session


def _bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise AuthenticationError("Authorization header missing")
    try:
        scheme, token = authorization.split()
    except ValueError:
        raise AuthenticationError("Invalid authorization header format")
    if scheme.lower() != "bearer":
        raise AuthenticationError("Invalid authentication scheme")
    return token


async def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization")
) -> Principal:
    """
    Authentication dependency that validates Bearer tokens.

    Raises:
        AuthenticationError: If the token is missing, malformed or invalid
    """
    token = _bearer_token(authorization)
    try:
        return decode_access_token(token)
    except PyJWTError as e:
        raise AuthenticationError(f"Token validation failed: {str(e)}")


async def require_staff(principal: Principal = Depends(get_current_user)) -> Principal:
    """Allow STAFF and ADMIN callers only."""
    if not principal.is_staff:
        raise PermissionDeniedError("Staff access required", required_role="STAFF")
    return principal


async def verify_cron_secret(
    authorization: Optional[str] = Header(None, alias="Authorization")
) -> None:
    """Scheduler endpoints authenticate with the shared cron secret as a bearer token."""
    token = _bearer_token(authorization)
    if not hmac.compare_digest(token, settings.cron_secret):
        raise AuthenticationError("Invalid scheduler credentials")


@lru_cache
def get_payment_gateways() -> PaymentGatewayRegistry:
    """Registry of provider adapters built from settings."""
    return build_gateway_registry(settings)


@lru_cache
def get_email_transport() -> EmailTransport:
    return build_email_transport(settings)


def get_notification_service(
    db: AsyncSession = Depends(get_db),
    transport: EmailTransport = Depends(get_email_transport),
) -> NotificationService:
    return NotificationService(db, transport)


# Shorthand dependency markers
RequiredAuth = Depends(get_current_user)
StaffAuth = Depends(require_staff)
DatabaseSession = Depends(get_db)
