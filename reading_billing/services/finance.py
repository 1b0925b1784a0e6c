from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from reading_billing.db.models.enums import TransactionStatus, TransactionType
from reading_billing.db.models.ledger import ClientBalance, ReaderProfile, Transaction
from reading_billing.services.pricing import to_money


@dataclass(frozen=True)
class FinanceSummary:
    total_transactions: int
    client_balances_outstanding: Decimal
    reader_pending_earnings: Decimal
    platform_fees_collected: Decimal
    payouts_in_flight: Decimal
    failed_charges: int


def _sum(db: Session, column, *conditions) -> Decimal:
    value = db.scalar(select(func.coalesce(func.sum(column), 0)).where(*conditions))
    return to_money(Decimal(str(value or 0)))


def get_finance_summary(db: Session) -> FinanceSummary:
    total_transactions = int(db.scalar(select(func.count()).select_from(Transaction)) or 0)
    failed_charges = int(
        db.scalar(
            select(func.count())
            .select_from(Transaction)
            .where(Transaction.type == TransactionType.CHARGE, Transaction.status == TransactionStatus.FAILED)
        )
        or 0
    )

    return FinanceSummary(
        total_transactions=total_transactions,
        client_balances_outstanding=_sum(db, ClientBalance.balance),
        reader_pending_earnings=_sum(db, ReaderProfile.pending_earnings),
        platform_fees_collected=_sum(
            db,
            Transaction.platform_fee,
            Transaction.type == TransactionType.CHARGE,
            Transaction.status == TransactionStatus.COMPLETED,
        ),
        payouts_in_flight=_sum(
            db,
            Transaction.amount,
            Transaction.type == TransactionType.PAYOUT,
            Transaction.status.in_([TransactionStatus.PENDING, TransactionStatus.PROCESSING]),
        ),
        failed_charges=failed_charges,
    )
