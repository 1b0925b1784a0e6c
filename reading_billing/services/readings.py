from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from reading_billing.core.config import get_settings
from reading_billing.core.exceptions import (
    InsufficientBalanceError,
    InsufficientFundsError,
    ProviderUnavailableError,
    SessionNotActiveError,
)
from reading_billing.db.models.auth import User
from reading_billing.db.models.enums import ChannelType, Role, SessionStatus
from reading_billing.db.models.ledger import ReaderProfile
from reading_billing.db.models.readings import ReadingSession
from reading_billing.services.ledger import (
    claim_reader,
    get_or_create_client_balance,
    get_platform_policy,
    get_reader_profile,
    release_floor,
    release_reader,
    reserve_floor,
)
from reading_billing.services.pricing import SessionCost, calculate_session_cost, to_money
from reading_billing.services.settlement import SettlementContext, record_failed_charge, settle

logger = logging.getLogger(__name__)

RATING_QUANTUM = Decimal("0.01")


@dataclass(frozen=True)
class SessionEndResult:
    session: ReadingSession
    cost: SessionCost
    settled: bool


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def build_channel_name(client_id: int, reader_id: int, *, now: datetime) -> str:
    first, second = sorted((client_id, reader_id))
    return f"reading_{first}_{second}_{int(_as_utc(now).timestamp() * 1000)}"


def fold_rating(current: Decimal, count: int, rating: int) -> Decimal:
    total = Decimal(current) * count + rating
    return (total / (count + 1)).quantize(RATING_QUANTUM, rounding=ROUND_HALF_UP)


def start_session(
    db: Session,
    *,
    client: User,
    reader_user_id: int,
    channel_type: ChannelType,
    now: datetime | None = None,
) -> ReadingSession:
    now = now or datetime.now(UTC)
    if client.id == reader_user_id:
        raise ProviderUnavailableError("Cannot start a session with yourself", reason="self")

    reader = get_reader_profile(db, user_id=reader_user_id)
    if reader is None:
        raise ProviderUnavailableError("Reader not found", reason="not_found")

    rate = reader.rate_for(channel_type)
    if rate is None or rate <= 0:
        raise ProviderUnavailableError(f"Reader does not offer {channel_type.value} sessions", reason="channel")

    if not (reader.is_online and reader.is_available):
        raise ProviderUnavailableError("Reader is not available", reason="busy")

    policy = get_platform_policy(db)
    floor = to_money(rate * policy.min_prepaid_minutes)
    balance = get_or_create_client_balance(db, user_id=client.id)
    spendable = balance.balance - balance.pending_charges
    if spendable < floor:
        raise InsufficientBalanceError(required=floor, available=spendable)

    # Both claims are conditional so a concurrent start loses cleanly; the
    # caller rolls back whichever one did land.
    if not claim_reader(db, user_id=reader_user_id):
        raise ProviderUnavailableError("Reader is not available", reason="busy")
    if not reserve_floor(db, user_id=client.id, amount=floor):
        raise InsufficientBalanceError(required=floor, available=spendable)

    awaiting_channel = get_settings().require_channel_confirmation
    reading = ReadingSession(
        client_id=client.id,
        reader_id=reader_user_id,
        channel_type=channel_type,
        status=SessionStatus.CREATED if awaiting_channel else SessionStatus.ACTIVE,
        rate_per_minute=to_money(rate),
        reserved_amount=floor,
        channel_name=build_channel_name(client.id, reader_user_id, now=now),
        requested_at=now,
        started_at=None if awaiting_channel else now,
    )
    db.add(reading)
    db.flush()

    logger.info(
        "session started",
        extra={
            "session_id": reading.id,
            "client_id": client.id,
            "reader_id": reader_user_id,
            "channel_type": channel_type.value,
            "rate_per_minute": str(reading.rate_per_minute),
            "status": reading.status.value,
        },
    )
    return reading


def _locked_session(db: Session, session_id: int) -> ReadingSession | None:
    return db.scalar(select(ReadingSession).where(ReadingSession.id == session_id).with_for_update())


def get_session_for_user(db: Session, *, session_id: int, user: User) -> ReadingSession:
    reading = db.get(ReadingSession, session_id)
    if reading is None or (user.role != Role.ADMIN and not reading.has_participant(user.id)):
        raise SessionNotActiveError("Session not found", session_id=session_id)
    return reading


def list_sessions_for_user(
    db: Session,
    *,
    user: User,
    page: int,
    page_size: int,
) -> tuple[int, list[ReadingSession]]:
    condition = (ReadingSession.client_id == user.id) | (ReadingSession.reader_id == user.id)
    total = int(db.scalar(select(func.count()).select_from(ReadingSession).where(condition)) or 0)
    sessions = db.scalars(
        select(ReadingSession)
        .where(condition)
        .order_by(ReadingSession.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    ).all()
    return total, list(sessions)


def activate_session(
    db: Session,
    *,
    session_id: int,
    actor: User,
    now: datetime | None = None,
) -> ReadingSession:
    now = now or datetime.now(UTC)
    reading = _locked_session(db, session_id)
    if reading is None or not reading.has_participant(actor.id):
        raise SessionNotActiveError("Session not found", session_id=session_id)
    if reading.status != SessionStatus.CREATED:
        raise SessionNotActiveError("Session is not awaiting activation", session_id=session_id)

    reading.status = SessionStatus.ACTIVE
    reading.started_at = now
    db.flush()
    logger.info("session activated", extra={"session_id": reading.id})
    return reading


def _release_participants(db: Session, reading: ReadingSession) -> None:
    release_reader(db, user_id=reading.reader_id)
    release_floor(db, user_id=reading.client_id, amount=reading.reserved_amount)


def _session_cost(db: Session, reading: ReadingSession, *, now: datetime) -> SessionCost:
    policy = get_platform_policy(db)
    started_at = _as_utc(reading.started_at) if reading.started_at is not None else now
    duration_seconds = int((now - started_at).total_seconds())
    return calculate_session_cost(duration_seconds, reading.rate_per_minute, fee_bps=policy.platform_fee_bps)


def _settlement_context(reading: ReadingSession, cost: SessionCost) -> SettlementContext:
    return SettlementContext(
        kind="session",
        description=f"{reading.channel_type.value.capitalize()} reading - {cost.billable_minutes} min",
        session_id=reading.id,
        billable_minutes=cost.billable_minutes,
        details={
            "duration_seconds": cost.duration_seconds,
            "billable_minutes": cost.billable_minutes,
            "rate_per_minute": str(cost.rate_per_minute),
        },
    )


def _mark_failed(
    db: Session,
    reading: ReadingSession,
    *,
    cost: SessionCost,
    reason: str,
    now: datetime,
) -> None:
    reading.status = SessionStatus.FAILED
    reading.ended_at = now
    reading.duration_seconds = cost.duration_seconds
    reading.total_cost = cost.amount
    reading.failure_reason = reason
    record_failed_charge(
        db,
        payer_id=reading.client_id,
        amount=cost.amount,
        context=_settlement_context(reading, cost),
        reason=reason,
    )
    _release_participants(db, reading)
    db.flush()


def _apply_rating(db: Session, *, reader_user_id: int, rating: int) -> None:
    profile = db.scalar(select(ReaderProfile).where(ReaderProfile.user_id == reader_user_id).with_for_update())
    if profile is None:
        return
    profile.rating = fold_rating(profile.rating, profile.total_reviews, rating)
    profile.total_reviews = profile.total_reviews + 1


def end_session(
    db: Session,
    *,
    session_id: int,
    actor: User,
    rating: int | None = None,
    review: str | None = None,
    now: datetime | None = None,
) -> SessionEndResult:
    """End an active session and bill it.

    A settlement refused for lack of funds does not raise here: the session is
    moved to ``failed`` with a failed charge on record and ``settled`` is False,
    so the caller can commit that state before reporting the failure.
    """

    now = now or datetime.now(UTC)
    reading = _locked_session(db, session_id)
    if reading is None or not reading.has_participant(actor.id):
        raise SessionNotActiveError("Session not found", session_id=session_id)
    if reading.status != SessionStatus.ACTIVE:
        raise SessionNotActiveError(session_id=session_id)

    cost = _session_cost(db, reading, now=now)
    try:
        settlement = settle(
            db,
            payer_id=reading.client_id,
            payee_id=reading.reader_id,
            amount=cost.amount,
            context=_settlement_context(reading, cost),
        )
    except InsufficientFundsError:
        _mark_failed(db, reading, cost=cost, reason="insufficient_funds", now=now)
        logger.warning("session failed", extra={"session_id": reading.id, "reason": "insufficient_funds"})
        return SessionEndResult(session=reading, cost=cost, settled=False)

    reading.status = SessionStatus.COMPLETED
    reading.ended_at = now
    reading.duration_seconds = cost.duration_seconds
    reading.total_cost = settlement.amount
    reading.platform_fee = settlement.platform_fee
    _release_participants(db, reading)

    if actor.id == reading.client_id and rating is not None:
        reading.client_rating = rating
        reading.client_review = review
        _apply_rating(db, reader_user_id=reading.reader_id, rating=rating)

    db.flush()
    logger.info(
        "session completed",
        extra={
            "session_id": reading.id,
            "duration_seconds": cost.duration_seconds,
            "billable_minutes": cost.billable_minutes,
            "total_cost": str(settlement.amount),
        },
    )
    return SessionEndResult(session=reading, cost=cost, settled=True)


def fail_session(
    db: Session,
    *,
    session_id: int,
    reason: str,
    now: datetime | None = None,
) -> ReadingSession | None:
    """Force an open session into ``failed`` after an unexpected settlement error."""

    now = now or datetime.now(UTC)
    reading = _locked_session(db, session_id)
    if reading is None or reading.status not in {SessionStatus.CREATED, SessionStatus.ACTIVE}:
        return None

    cost = _session_cost(db, reading, now=now)
    _mark_failed(db, reading, cost=cost, reason=reason, now=now)
    logger.error("session failed", extra={"session_id": reading.id, "reason": reason})
    return reading


def cancel_stale_sessions(db: Session, *, now: datetime | None = None) -> int:
    """Cancel sessions whose channel never came up and free what they held."""

    now = now or datetime.now(UTC)
    policy = get_platform_policy(db)
    cutoff = now - timedelta(seconds=policy.session_start_timeout_seconds)
    stale_ids = db.scalars(
        select(ReadingSession.id).where(
            ReadingSession.status == SessionStatus.CREATED,
            ReadingSession.requested_at < cutoff,
        )
    ).all()

    cancelled = 0
    for session_id in stale_ids:
        result = db.execute(
            update(ReadingSession)
            .where(ReadingSession.id == session_id, ReadingSession.status == SessionStatus.CREATED)
            .values(status=SessionStatus.CANCELLED, ended_at=now, failure_reason="start_timeout")
        )
        if result.rowcount != 1:
            continue
        reading = db.get(ReadingSession, session_id)
        if reading is not None:
            _release_participants(db, reading)
        cancelled += 1

    if cancelled:
        logger.info("stale sessions cancelled", extra={"cancelled": cancelled})
    return cancelled
