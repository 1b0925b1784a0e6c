from __future__ import annotations

from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from reading_billing.core.exceptions import (
    InsufficientBalanceError,
    InsufficientFundsError,
    ProviderUnavailableError,
    ResourceNotFoundError,
)
from reading_billing.db.models.auth import User
from reading_billing.db.models.gifts import VirtualGift
from reading_billing.services.ledger import get_or_create_client_balance, get_reader_profile
from reading_billing.services.pricing import to_money
from reading_billing.services.settlement import SettlementContext, SettlementResult, settle


def list_active_gifts(db: Session) -> list[VirtualGift]:
    query = select(VirtualGift).where(VirtualGift.is_active.is_(True)).order_by(VirtualGift.price)
    return list(db.scalars(query).all())


def send_gift(
    db: Session,
    *,
    sender: User,
    reader_user_id: int,
    gift_code: str,
    quantity: int,
    message: str | None = None,
) -> SettlementResult:
    if sender.id == reader_user_id:
        raise ProviderUnavailableError("Cannot send a gift to yourself", reason="self")
    if get_reader_profile(db, user_id=reader_user_id) is None:
        raise ResourceNotFoundError("Reader", reader_user_id)

    gift = db.scalar(select(VirtualGift).where(VirtualGift.code == gift_code, VirtualGift.is_active.is_(True)))
    if gift is None:
        raise ResourceNotFoundError("Gift", gift_code)

    amount = to_money(gift.price * quantity)
    context = SettlementContext(
        kind="gift",
        description=f"Gift: {quantity}x {gift.name}",
        gift_id=gift.id,
        details={"gift_code": gift.code, "quantity": quantity, "message": message},
    )
    try:
        return settle(db, payer_id=sender.id, payee_id=reader_user_id, amount=amount, context=context)
    except InsufficientFundsError as exc:
        balance = get_or_create_client_balance(db, user_id=sender.id)
        raise InsufficientBalanceError(required=amount, available=balance.balance or Decimal("0")) from exc
