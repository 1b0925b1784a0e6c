from __future__ import annotations

import logging
from collections.abc import Generator
from typing import Any

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from reading_billing.core.security import TokenValidationError, validate_access_token
from reading_billing.db.models.auth import User
from reading_billing.db.models.enums import Role
from reading_billing.db.session import SessionLocal

# Tokens are minted by the identity provider; this path only feeds the OpenAPI docs.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")
logger = logging.getLogger(__name__)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _provision_user(db: Session, *, user_id: int, payload: dict[str, Any]) -> User | None:
    email = payload.get("email")
    try:
        role = Role(payload.get("role"))
    except ValueError:
        return None
    if not email:
        return None

    user = User(id=user_id, email=str(email), role=role, is_active=True)
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return db.scalar(select(User).where(User.id == user_id))
    logger.info("user provisioned", extra={"user_id": user_id, "role": role.value})
    return user


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    try:
        payload = validate_access_token(token)
        user_id = int(payload["sub"])
    except (TokenValidationError, KeyError, ValueError) as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc

    user = db.get(User, user_id)
    if user is None:
        user = _provision_user(db, user_id=user_id, payload=payload)
    if user is None or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not available")
    return user


def require_roles(*roles: Role):
    allowed_roles = set(roles)

    def _dependency(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed_roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role")
        return current_user

    return _dependency
