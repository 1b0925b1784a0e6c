from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from reading_billing.api.dependencies.auth import get_current_user, get_db, require_roles
from reading_billing.api.dependencies.rate_limit import rate_limited
from reading_billing.core.exceptions import AppException, SettlementFailedError
from reading_billing.db.models.auth import User
from reading_billing.db.models.enums import Role
from reading_billing.db.models.readings import ReadingSession
from reading_billing.schemas.readings import (
    EndSessionRequest,
    SessionPageResponse,
    SessionResponse,
    StartSessionRequest,
)
from reading_billing.services.pricing import billable_minutes
from reading_billing.services.readings import (
    activate_session,
    end_session,
    fail_session,
    get_session_for_user,
    list_sessions_for_user,
    start_session,
)

router = APIRouter(prefix="/readings", tags=["readings"])
logger = logging.getLogger(__name__)


def session_response(reading: ReadingSession) -> SessionResponse:
    return SessionResponse(
        id=reading.id,
        client_id=reading.client_id,
        reader_id=reading.reader_id,
        channel_type=reading.channel_type,
        status=reading.status.value,
        channel_name=reading.channel_name,
        rate_per_minute=reading.rate_per_minute,
        requested_at=reading.requested_at,
        started_at=reading.started_at,
        ended_at=reading.ended_at,
        duration_seconds=reading.duration_seconds,
        billable_minutes=billable_minutes(reading.duration_seconds) if reading.duration_seconds is not None else None,
        total_cost=reading.total_cost,
        platform_fee=reading.platform_fee,
        client_rating=reading.client_rating,
        failure_reason=reading.failure_reason,
    )


@router.post("", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
def start_reading(
    payload: StartSessionRequest,
    current_user: User = Depends(require_roles(Role.CLIENT)),
    _: User = Depends(rate_limited("session_start")),
    db: Session = Depends(get_db),
) -> SessionResponse:
    try:
        reading = start_session(
            db,
            client=current_user,
            reader_user_id=payload.reader_id,
            channel_type=payload.channel_type,
        )
    except AppException:
        db.rollback()
        raise
    db.commit()
    return session_response(reading)


@router.get("", response_model=SessionPageResponse)
def my_readings(
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> SessionPageResponse:
    total, sessions = list_sessions_for_user(db, user=current_user, page=page, page_size=page_size)
    return SessionPageResponse(
        page=page,
        page_size=page_size,
        total=total,
        items=[session_response(reading) for reading in sessions],
    )


@router.get("/{session_id}", response_model=SessionResponse)
def get_reading(
    session_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> SessionResponse:
    return session_response(get_session_for_user(db, session_id=session_id, user=current_user))


@router.post("/{session_id}/activate", response_model=SessionResponse)
def activate_reading(
    session_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> SessionResponse:
    try:
        reading = activate_session(db, session_id=session_id, actor=current_user)
    except AppException:
        db.rollback()
        raise
    db.commit()
    return session_response(reading)


@router.post("/{session_id}/end", response_model=SessionResponse)
def end_reading(
    session_id: int,
    payload: EndSessionRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> SessionResponse:
    try:
        result = end_session(
            db,
            session_id=session_id,
            actor=current_user,
            rating=payload.rating,
            review=payload.review,
        )
    except AppException:
        db.rollback()
        raise
    except Exception:
        db.rollback()
        logger.exception("session settlement crashed", extra={"session_id": session_id})
        fail_session(db, session_id=session_id, reason="settlement_error")
        db.commit()
        raise

    db.commit()
    if not result.settled:
        raise SettlementFailedError(session_id=session_id, amount=result.cost.amount)
    return session_response(result.session)
