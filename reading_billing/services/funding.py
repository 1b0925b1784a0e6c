from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.orm import Session

from reading_billing.db.models.auth import User
from reading_billing.db.models.enums import TransactionStatus, TransactionType
from reading_billing.services.ledger import append_transaction, get_or_create_client_balance
from reading_billing.services.payment_gateway import PaymentGateway
from reading_billing.services.pricing import to_money

logger = logging.getLogger(__name__)

MIN_TOPUP = Decimal("5.00")
MAX_TOPUP = Decimal("500.00")


@dataclass(frozen=True)
class TopupResult:
    transaction_id: int
    payment_intent_id: str
    client_secret: str | None
    amount: Decimal
    status: TransactionStatus


def create_topup(
    db: Session,
    *,
    user: User,
    amount: Decimal,
    gateway: PaymentGateway,
    payment_method_id: str | None = None,
    idempotency_key: str | None = None,
) -> TopupResult:
    """Open a card payment for ``amount``; the balance moves when the processor confirms it."""

    amount = to_money(amount)
    balance = get_or_create_client_balance(db, user_id=user.id)
    intent = gateway.create_topup_intent(
        amount=amount,
        user_id=user.id,
        idempotency_key=idempotency_key or f"topup-{user.id}-{uuid.uuid4().hex}",
        payment_method_id=payment_method_id,
        customer_id=balance.processor_customer_id,
    )
    status = TransactionStatus.PROCESSING if intent.status == "processing" else TransactionStatus.PENDING
    entry = append_transaction(
        db,
        user_id=user.id,
        type=TransactionType.TOPUP,
        status=status,
        amount=amount,
        external_reference=intent.id,
        description="Account top-up",
        details={"payment_method_id": payment_method_id, "intent_status": intent.status},
    )
    logger.info(
        "topup requested",
        extra={"user_id": user.id, "amount": str(amount), "payment_intent_id": intent.id},
    )
    return TopupResult(
        transaction_id=entry.id,
        payment_intent_id=intent.id,
        client_secret=intent.client_secret,
        amount=amount,
        status=status,
    )
