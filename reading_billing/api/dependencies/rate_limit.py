from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status

from reading_billing.api.dependencies.auth import get_current_user
from reading_billing.db.models.auth import User


def rate_limited(action: str):
    """Per-user limit on ``action`` using the limiter registered on ``app.state.rate_limiters``."""

    def _dependency(request: Request, current_user: User = Depends(get_current_user)) -> User:
        limiter = request.app.state.rate_limiters[action]
        if not limiter.allow(f"{action}:{current_user.id}"):
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=f"Rate limit exceeded for {action.replace('_', ' ')}",
            )
        return current_user

    return _dependency
