from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from reading_billing.api.dependencies.auth import get_current_user, get_db, require_roles
from reading_billing.core.exceptions import AppException
from reading_billing.db.models.auth import User
from reading_billing.db.models.enums import Role
from reading_billing.schemas.gifts import GiftCatalogResponse, GiftResponse, SendGiftRequest, SendGiftResponse
from reading_billing.services.gifts import list_active_gifts, send_gift

router = APIRouter(prefix="/gifts", tags=["gifts"])


@router.get("", response_model=GiftCatalogResponse)
def gift_catalog(
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> GiftCatalogResponse:
    return GiftCatalogResponse(
        gifts=[GiftResponse(code=gift.code, name=gift.name, price=gift.price) for gift in list_active_gifts(db)]
    )


@router.post("/send", response_model=SendGiftResponse, status_code=status.HTTP_201_CREATED)
def send(
    payload: SendGiftRequest,
    current_user: User = Depends(require_roles(Role.CLIENT)),
    db: Session = Depends(get_db),
) -> SendGiftResponse:
    try:
        result = send_gift(
            db,
            sender=current_user,
            reader_user_id=payload.reader_id,
            gift_code=payload.gift_code,
            quantity=payload.quantity,
            message=payload.message,
        )
    except AppException:
        db.rollback()
        raise
    db.commit()
    return SendGiftResponse(
        amount=result.amount,
        platform_fee=result.platform_fee,
        reader_share=result.payee_share,
        charge_transaction_id=result.charge_transaction_id,
    )
