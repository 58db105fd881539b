"""Authenticated caller identity and bearer token helpers."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from ..models.user import UserRole
from .config import settings

JWT_ALGORITHM = "HS256"


@dataclass(frozen=True)
class Principal:
    """The caller as asserted by a verified bearer token. The role is trusted."""

    id: str
    role: UserRole
    email: Optional[str] = None
    name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_staff(self) -> bool:
        """Staff and admins may act on other users' bookings."""
        return self.role in (UserRole.STAFF, UserRole.ADMIN)


def create_access_token(
    user_id: str,
    role: UserRole,
    email: Optional[str] = None,
    name: Optional[str] = None,
    expires_in: timedelta = timedelta(hours=1),
) -> str:
    """Issue an HS256 token in the shape ``decode_access_token`` expects."""
    payload = {
        "sub": user_id,
        "role": role.value,
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    if email:
        payload["email"] = email
    if name:
        payload["name"] = name
    return jwt.encode(payload, settings.bearer_token_secret, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> Principal:
    """
    Verify ``token`` and build the caller's ``Principal``.

    Raises:
        jwt.PyJWTError: If the signature, expiry or claims are invalid
    """
    payload = jwt.decode(
        token,
        settings.bearer_token_secret,
        algorithms=[JWT_ALGORITHM],
        options={"require": ["sub", "exp"]},
    )
    try:
        role = UserRole(str(payload.get("role", UserRole.CUSTOMER.value)).upper())
    except ValueError as e:
        raise jwt.InvalidTokenError(f"Unknown role {payload.get('role')!r}") from e

    return Principal(
        id=str(payload["sub"]),
        role=role,
        email=payload.get("email"),
        name=payload.get("name"),
    )
