from __future__ import annotations

import hmac
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt

from reading_billing.core.config import get_settings


class TokenValidationError(ValueError):
    """Raised when a JWT is invalid, expired, or has unexpected claims."""


def create_access_token(
    *,
    user_id: int,
    email: str,
    role: str,
    expires_minutes: int = 15,
) -> str:
    """Mint a token the way the identity provider does; used by tooling and tests."""

    settings = get_settings()
    expires_at = datetime.now(UTC) + timedelta(minutes=expires_minutes)
    claims = {"sub": str(user_id), "email": email, "role": role, "type": "access", "exp": expires_at}
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def validate_access_token(token: str) -> dict[str, Any]:
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.PyJWTError as exc:
        raise TokenValidationError("Invalid token") from exc

    if payload.get("type") != "access":
        raise TokenValidationError("Invalid token type")

    if payload.get("sub") is None:
        raise TokenValidationError("Missing token subject")

    return payload


def verify_shared_secret(provided: str, expected: str) -> bool:
    if not expected:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))
