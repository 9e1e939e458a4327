"""Staff bearer tokens (JWT)."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from coachcarter.core.config import get_settings
from coachcarter.shared.exceptions import UnauthorizedException

STAFF_ROLE = "staff"

settings = get_settings()
bearer_scheme = HTTPBearer(auto_error=False)


def create_staff_token(subject: str, expires_delta: timedelta | None = None, **claims: Any) -> str:
    """Create signed staff access token."""
    expires = expires_delta or timedelta(minutes=settings.staff_token_expire_minutes)
    payload: dict[str, Any] = {
        "sub": subject,
        "type": "access",
        "role": STAFF_ROLE,
        "exp": datetime.now(UTC) + expires,
    }
    payload.update(claims)
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict[str, Any]:
    """Decode and validate JWT token."""
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise UnauthorizedException("Invalid token") from exc


async def get_current_staff(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> str:
    """Resolve staff member name from bearer token."""
    if credentials is None:
        raise UnauthorizedException("Staff token is required")

    payload = decode_token(credentials.credentials)
    if payload.get("type") != "access" or payload.get("role") != STAFF_ROLE:
        raise UnauthorizedException("Staff access required")

    subject = payload.get("sub")
    if not subject:
        raise UnauthorizedException("Token subject is missing")
    return str(subject)
