from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from reading_billing.core.exceptions import RefundNotAllowedError, ResourceNotFoundError
from reading_billing.db.models.auth import User
from reading_billing.db.models.enums import TransactionStatus, TransactionType
from reading_billing.db.models.ledger import Transaction
from reading_billing.services.ledger import append_transaction, credit_balance, debit_reader_pending

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RefundResult:
    session_id: int
    client_refund_id: int
    reader_reversal_id: int
    amount: Decimal
    reader_share: Decimal


def _session_entry(db: Session, *, session_id: int, type: TransactionType) -> Transaction | None:
    return db.scalar(
        select(Transaction).where(
            Transaction.session_id == session_id,
            Transaction.type == type,
            Transaction.status == TransactionStatus.COMPLETED,
        )
    )


def refund_session_charge(
    db: Session,
    *,
    session_id: int,
    actor: User,
    reason: str,
) -> RefundResult:
    charge = _session_entry(db, session_id=session_id, type=TransactionType.CHARGE)
    earning = _session_entry(db, session_id=session_id, type=TransactionType.EARNING)
    if charge is None or earning is None:
        raise ResourceNotFoundError("Settled charge for session", session_id)

    already_refunded = db.scalar(select(Transaction.id).where(Transaction.refund_of_id == charge.id))
    if already_refunded is not None:
        raise RefundNotAllowedError("Charge has already been refunded")

    if not debit_reader_pending(db, user_id=earning.user_id, amount=earning.amount, reduce_total=True):
        raise RefundNotAllowedError("Reader earnings for this session have already been paid out")
    credit_balance(db, user_id=charge.user_id, amount=charge.amount, reduce_spent=True)

    details = {"reason": reason, "refunded_by": actor.id}
    client_refund = append_transaction(
        db,
        user_id=charge.user_id,
        type=TransactionType.REFUND,
        status=TransactionStatus.COMPLETED,
        amount=charge.amount,
        session_id=session_id,
        refund_of_id=charge.id,
        description="Session refund",
        details=details,
    )
    reader_reversal = append_transaction(
        db,
        user_id=earning.user_id,
        type=TransactionType.REFUND,
        status=TransactionStatus.COMPLETED,
        amount=earning.amount,
        session_id=session_id,
        refund_of_id=earning.id,
        description="Session refund - earnings reversed",
        details=details,
    )

    logger.info(
        "session charge refunded",
        extra={"session_id": session_id, "amount": str(charge.amount), "refunded_by": actor.id},
    )
    return RefundResult(
        session_id=session_id,
        client_refund_id=client_refund.id,
        reader_reversal_id=reader_reversal.id,
        amount=charge.amount,
        reader_share=earning.amount,
    )
