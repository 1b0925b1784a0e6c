from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from reading_billing.api.dependencies.auth import get_db, require_roles
from reading_billing.core.config import get_settings
from reading_billing.core.exceptions import AppException, ResourceNotFoundError
from reading_billing.db.models.auth import User
from reading_billing.db.models.enums import Role
from reading_billing.db.models.ledger import ReaderProfile
from reading_billing.schemas.readers import (
    PayoutAccountLinkResponse,
    ReaderEarningsResponse,
    ReaderProfileRequest,
    ReaderProfileResponse,
    ReaderStatusRequest,
)
from reading_billing.services.ledger import get_reader_profile
from reading_billing.services.payment_gateway import PaymentGateway, get_payment_gateway
from reading_billing.services.readers import link_payout_account, set_availability, upsert_reader_profile

router = APIRouter(prefix="/readers/me", tags=["readers"])


def profile_response(profile: ReaderProfile) -> ReaderProfileResponse:
    return ReaderProfileResponse(
        user_id=profile.user_id,
        display_name=profile.display_name,
        chat_rate=profile.chat_rate,
        voice_rate=profile.voice_rate,
        video_rate=profile.video_rate,
        is_online=profile.is_online,
        is_available=profile.is_available,
        rating=profile.rating,
        total_reviews=profile.total_reviews,
        payout_account_status=profile.payout_account_status.value,
    )


@router.put("/profile", response_model=ReaderProfileResponse)
def update_profile(
    payload: ReaderProfileRequest,
    current_user: User = Depends(require_roles(Role.READER)),
    db: Session = Depends(get_db),
) -> ReaderProfileResponse:
    profile = upsert_reader_profile(
        db,
        user=current_user,
        display_name=payload.display_name,
        chat_rate=payload.chat_rate,
        voice_rate=payload.voice_rate,
        video_rate=payload.video_rate,
    )
    db.commit()
    return profile_response(profile)


@router.patch("/status", response_model=ReaderProfileResponse)
def update_status(
    payload: ReaderStatusRequest,
    current_user: User = Depends(require_roles(Role.READER)),
    db: Session = Depends(get_db),
) -> ReaderProfileResponse:
    try:
        profile = set_availability(
            db,
            user=current_user,
            is_online=payload.is_online,
            is_available=payload.is_available,
        )
    except AppException:
        db.rollback()
        raise
    db.commit()
    return profile_response(profile)


@router.get("/earnings", response_model=ReaderEarningsResponse)
def my_earnings(
    current_user: User = Depends(require_roles(Role.READER)),
    db: Session = Depends(get_db),
) -> ReaderEarningsResponse:
    profile = get_reader_profile(db, user_id=current_user.id)
    if profile is None:
        raise ResourceNotFoundError("Reader profile", current_user.id)
    return ReaderEarningsResponse(
        pending_earnings=profile.pending_earnings,
        total_earnings=profile.total_earnings,
        total_minutes=profile.total_minutes,
        last_payout_at=profile.last_payout_at,
        payout_account_status=profile.payout_account_status.value,
    )


@router.post("/payout-account", response_model=PayoutAccountLinkResponse)
def connect_payout_account(
    current_user: User = Depends(require_roles(Role.READER)),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> PayoutAccountLinkResponse:
    settings = get_settings()
    try:
        onboarding = link_payout_account(
            db,
            user=current_user,
            gateway=gateway,
            refresh_url=settings.payout_onboarding_refresh_url,
            return_url=settings.payout_onboarding_return_url,
        )
    except AppException:
        db.rollback()
        raise
    db.commit()
    return PayoutAccountLinkResponse(
        account_id=onboarding.account_id,
        status=onboarding.status.value,
        onboarding_url=onboarding.onboarding_url,
    )
