from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy.orm import Session

from reading_billing.core.exceptions import InsufficientFundsError
from reading_billing.core.observability import metrics
from reading_billing.db.models.enums import TransactionStatus, TransactionType
from reading_billing.services.ledger import (
    append_transaction,
    credit_reader_earnings,
    debit_balance_if_covered,
    get_platform_policy,
)
from reading_billing.services.pricing import split_amount, to_money

logger = logging.getLogger(__name__)


class SettlementError(RuntimeError):
    """The payee side of a settlement could not be applied; the unit of work must be rolled back."""


@dataclass(frozen=True)
class SettlementContext:
    kind: str
    description: str
    session_id: int | None = None
    gift_id: int | None = None
    billable_minutes: int = 0
    details: dict[str, object] = field(default_factory=dict)


@dataclass(frozen=True)
class SettlementResult:
    amount: Decimal
    platform_fee: Decimal
    payee_share: Decimal
    charge_transaction_id: int
    earning_transaction_id: int


def settle(
    db: Session,
    *,
    payer_id: int,
    payee_id: int,
    amount: Decimal,
    context: SettlementContext,
) -> SettlementResult:
    """Move ``amount`` from a client's balance to a reader's pending earnings.

    The payer debit is a compare-and-decrement; when it matches no row nothing
    has been written and ``InsufficientFundsError`` is raised. Anything failing
    after the debit raises and leaves the rollback to the caller, so all writes
    land in one transaction or none do.
    """

    amount = to_money(amount)
    if not debit_balance_if_covered(db, user_id=payer_id, amount=amount):
        raise InsufficientFundsError(payer_id=payer_id, amount=amount)

    policy = get_platform_policy(db)
    split = split_amount(amount, fee_bps=policy.platform_fee_bps)

    if not credit_reader_earnings(
        db,
        user_id=payee_id,
        amount=split.payee_share,
        minutes=context.billable_minutes,
    ):
        raise SettlementError(f"payee {payee_id} has no reader profile")

    details: dict[str, object] = {
        "kind": context.kind,
        "platform_fee_bps": policy.platform_fee_bps,
        "amount": str(split.amount),
        **context.details,
    }
    charge = append_transaction(
        db,
        user_id=payer_id,
        type=TransactionType.CHARGE,
        status=TransactionStatus.COMPLETED,
        amount=split.amount,
        platform_fee=split.platform_fee,
        session_id=context.session_id,
        gift_id=context.gift_id,
        description=context.description,
        details=details,
    )
    earning = append_transaction(
        db,
        user_id=payee_id,
        type=TransactionType.EARNING,
        status=TransactionStatus.COMPLETED,
        amount=split.payee_share,
        platform_fee=split.platform_fee,
        session_id=context.session_id,
        gift_id=context.gift_id,
        description=context.description,
        details={**details, "charge_transaction_id": charge.id},
    )

    metrics.increment("settlements_total", kind=context.kind)
    logger.info(
        "settlement applied",
        extra={
            "kind": context.kind,
            "payer_id": payer_id,
            "payee_id": payee_id,
            "amount": str(split.amount),
            "platform_fee": str(split.platform_fee),
            "session_id": context.session_id,
            "gift_id": context.gift_id,
        },
    )
    return SettlementResult(
        amount=split.amount,
        platform_fee=split.platform_fee,
        payee_share=split.payee_share,
        charge_transaction_id=charge.id,
        earning_transaction_id=earning.id,
    )


def record_failed_charge(
    db: Session,
    *,
    payer_id: int,
    amount: Decimal,
    context: SettlementContext,
    reason: str,
) -> int:
    """Write the charge that could not be collected so it shows up in reconciliation."""

    policy = get_platform_policy(db)
    split = split_amount(amount, fee_bps=policy.platform_fee_bps)
    entry = append_transaction(
        db,
        user_id=payer_id,
        type=TransactionType.CHARGE,
        status=TransactionStatus.FAILED,
        amount=split.amount,
        platform_fee=split.platform_fee,
        session_id=context.session_id,
        gift_id=context.gift_id,
        description=context.description,
        details={"kind": context.kind, **context.details},
        failure_reason=reason,
    )
    metrics.increment("settlement_failures_total", reason=reason)
    logger.warning(
        "settlement failed",
        extra={"kind": context.kind, "payer_id": payer_id, "amount": str(split.amount), "reason": reason},
    )
    return entry.id
