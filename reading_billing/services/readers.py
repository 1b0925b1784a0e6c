from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from reading_billing.core.exceptions import ReaderBusyError, ResourceNotFoundError
from reading_billing.db.models.auth import User
from reading_billing.db.models.enums import OPEN_SESSION_STATUSES, PayoutAccountStatus
from reading_billing.db.models.ledger import ReaderProfile
from reading_billing.db.models.readings import ReadingSession
from reading_billing.services.ledger import get_reader_profile
from reading_billing.services.payment_gateway import PaymentGateway
from reading_billing.services.pricing import to_money

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PayoutOnboarding:
    account_id: str
    status: PayoutAccountStatus
    onboarding_url: str


def _require_profile(db: Session, user: User) -> ReaderProfile:
    profile = get_reader_profile(db, user_id=user.id)
    if profile is None:
        raise ResourceNotFoundError("Reader profile", user.id)
    return profile


def upsert_reader_profile(
    db: Session,
    *,
    user: User,
    display_name: str,
    chat_rate: Decimal | None,
    voice_rate: Decimal | None,
    video_rate: Decimal | None,
) -> ReaderProfile:
    profile = get_reader_profile(db, user_id=user.id)
    if profile is None:
        profile = ReaderProfile(user_id=user.id, display_name=display_name)
        db.add(profile)

    profile.display_name = display_name
    profile.chat_rate = to_money(chat_rate) if chat_rate is not None else None
    profile.voice_rate = to_money(voice_rate) if voice_rate is not None else None
    profile.video_rate = to_money(video_rate) if video_rate is not None else None
    db.flush()
    return profile


def has_open_session(db: Session, *, reader_user_id: int) -> bool:
    session_id = db.scalar(
        select(ReadingSession.id).where(
            ReadingSession.reader_id == reader_user_id,
            ReadingSession.status.in_(OPEN_SESSION_STATUSES),
        )
    )
    return session_id is not None


def set_availability(db: Session, *, user: User, is_online: bool, is_available: bool) -> ReaderProfile:
    profile = _require_profile(db, user)
    is_available = is_available and is_online
    if is_available and not profile.is_available and has_open_session(db, reader_user_id=user.id):
        raise ReaderBusyError()

    profile.is_online = is_online
    profile.is_available = is_available
    db.flush()
    logger.info(
        "reader availability changed",
        extra={"reader_id": user.id, "is_online": is_online, "is_available": is_available},
    )
    return profile


def link_payout_account(
    db: Session,
    *,
    user: User,
    gateway: PaymentGateway,
    refresh_url: str,
    return_url: str,
) -> PayoutOnboarding:
    profile = _require_profile(db, user)
    if profile.payout_account_id is None:
        profile.payout_account_id = gateway.create_payout_account(email=user.email, user_id=user.id)
        profile.payout_account_status = PayoutAccountStatus.PENDING
        db.flush()
        logger.info("payout account created", extra={"reader_id": user.id, "account_id": profile.payout_account_id})

    url = gateway.create_onboarding_link(
        account_id=profile.payout_account_id,
        refresh_url=refresh_url,
        return_url=return_url,
    )
    return PayoutOnboarding(
        account_id=profile.payout_account_id,
        status=profile.payout_account_status,
        onboarding_url=url,
    )


def payout_status_from_account(account: dict[str, object]) -> PayoutAccountStatus:
    requirements = account.get("requirements") or {}
    if isinstance(requirements, dict) and requirements.get("disabled_reason"):
        return PayoutAccountStatus.DISABLED
    if account.get("payouts_enabled") and account.get("details_submitted"):
        return PayoutAccountStatus.ACTIVE
    return PayoutAccountStatus.PENDING
