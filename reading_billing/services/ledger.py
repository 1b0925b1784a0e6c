"""Ledger store primitives.

Balances and earnings are only ever changed through the conditional, single-row
UPDATE statements below. Each returns whether a row matched so callers can treat
``False`` as "the guard did not hold" without a separate read.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from sqlalchemy import case, func, select, update
from sqlalchemy.orm import Session

from reading_billing.core.config import get_settings
from reading_billing.db.models.enums import TransactionStatus, TransactionType
from reading_billing.db.models.ledger import ClientBalance, ReaderProfile, Transaction
from reading_billing.db.models.platform import (
    DEFAULT_MIN_PREPAID_MINUTES,
    DEFAULT_MINIMUM_PAYOUT,
    DEFAULT_PLATFORM_FEE_BPS,
    DEFAULT_SESSION_START_TIMEOUT_SECONDS,
    PLATFORM_SETTINGS_SINGLETON_ID,
    PlatformSettings,
)


@dataclass(frozen=True)
class PlatformPolicy:
    platform_fee_bps: int
    minimum_payout: Decimal
    min_prepaid_minutes: int
    session_start_timeout_seconds: int


def get_platform_policy(db: Session) -> PlatformPolicy:
    row = db.get(PlatformSettings, PLATFORM_SETTINGS_SINGLETON_ID)
    if row is None:
        return PlatformPolicy(
            platform_fee_bps=DEFAULT_PLATFORM_FEE_BPS,
            minimum_payout=DEFAULT_MINIMUM_PAYOUT,
            min_prepaid_minutes=DEFAULT_MIN_PREPAID_MINUTES,
            session_start_timeout_seconds=DEFAULT_SESSION_START_TIMEOUT_SECONDS,
        )
    return PlatformPolicy(
        platform_fee_bps=row.platform_fee_bps,
        minimum_payout=row.minimum_payout,
        min_prepaid_minutes=row.min_prepaid_minutes,
        session_start_timeout_seconds=row.session_start_timeout_seconds,
    )


def get_or_create_client_balance(db: Session, *, user_id: int) -> ClientBalance:
    balance = db.scalar(select(ClientBalance).where(ClientBalance.user_id == user_id))
    if balance is not None:
        return balance

    balance = ClientBalance(
        user_id=user_id,
        balance=Decimal("0"),
        pending_charges=Decimal("0"),
        total_spent=Decimal("0"),
    )
    db.add(balance)
    db.flush()
    return balance


def get_reader_profile(db: Session, *, user_id: int) -> ReaderProfile | None:
    return db.scalar(select(ReaderProfile).where(ReaderProfile.user_id == user_id))


def debit_balance_if_covered(db: Session, *, user_id: int, amount: Decimal, count_as_spend: bool = True) -> bool:
    values: dict[str, Any] = {"balance": ClientBalance.balance - amount}
    if count_as_spend:
        values["total_spent"] = ClientBalance.total_spent + amount
    result = db.execute(
        update(ClientBalance)
        .where(ClientBalance.user_id == user_id, ClientBalance.balance >= amount)
        .values(**values)
    )
    return result.rowcount == 1


def credit_balance(db: Session, *, user_id: int, amount: Decimal, reduce_spent: bool = False) -> None:
    get_or_create_client_balance(db, user_id=user_id)
    values: dict[str, Any] = {"balance": ClientBalance.balance + amount}
    if reduce_spent:
        values["total_spent"] = ClientBalance.total_spent - amount
    db.execute(update(ClientBalance).where(ClientBalance.user_id == user_id).values(**values))


def reserve_floor(db: Session, *, user_id: int, amount: Decimal) -> bool:
    """Hold ``amount`` of the spendable balance for a session that is about to start."""

    result = db.execute(
        update(ClientBalance)
        .where(
            ClientBalance.user_id == user_id,
            ClientBalance.balance - ClientBalance.pending_charges >= amount,
        )
        .values(pending_charges=ClientBalance.pending_charges + amount)
    )
    return result.rowcount == 1


def release_floor(db: Session, *, user_id: int, amount: Decimal) -> None:
    if amount <= 0:
        return
    db.execute(
        update(ClientBalance)
        .where(ClientBalance.user_id == user_id, ClientBalance.pending_charges >= amount)
        .values(pending_charges=ClientBalance.pending_charges - amount)
    )


def claim_reader(db: Session, *, user_id: int) -> bool:
    result = db.execute(
        update(ReaderProfile)
        .where(
            ReaderProfile.user_id == user_id,
            ReaderProfile.is_online.is_(True),
            ReaderProfile.is_available.is_(True),
        )
        .values(is_available=False)
    )
    return result.rowcount == 1


def release_reader(db: Session, *, user_id: int) -> None:
    # An offline reader stays unavailable.
    db.execute(
        update(ReaderProfile)
        .where(ReaderProfile.user_id == user_id)
        .values(is_available=ReaderProfile.is_online)
    )


def credit_reader_earnings(db: Session, *, user_id: int, amount: Decimal, minutes: int = 0) -> bool:
    result = db.execute(
        update(ReaderProfile)
        .where(ReaderProfile.user_id == user_id)
        .values(
            pending_earnings=ReaderProfile.pending_earnings + amount,
            total_earnings=ReaderProfile.total_earnings + amount,
            total_minutes=ReaderProfile.total_minutes + minutes,
        )
    )
    return result.rowcount == 1


def debit_reader_pending(db: Session, *, user_id: int, amount: Decimal, reduce_total: bool = False) -> bool:
    values: dict[str, Any] = {"pending_earnings": ReaderProfile.pending_earnings - amount}
    if reduce_total:
        values["total_earnings"] = ReaderProfile.total_earnings - amount
    result = db.execute(
        update(ReaderProfile)
        .where(ReaderProfile.user_id == user_id, ReaderProfile.pending_earnings >= amount)
        .values(**values)
    )
    return result.rowcount == 1


def restore_reader_pending(db: Session, *, user_id: int, amount: Decimal) -> bool:
    result = db.execute(
        update(ReaderProfile)
        .where(ReaderProfile.user_id == user_id)
        .values(pending_earnings=ReaderProfile.pending_earnings + amount)
    )
    return result.rowcount == 1


def append_transaction(
    db: Session,
    *,
    user_id: int,
    type: TransactionType,
    status: TransactionStatus,
    amount: Decimal,
    **fields: Any,
) -> Transaction:
    entry = Transaction(
        user_id=user_id,
        type=type,
        status=status,
        amount=amount,
        currency=get_settings().currency,
        **fields,
    )
    db.add(entry)
    db.flush()
    return entry


def transition_transaction(
    db: Session,
    *,
    transaction_id: int,
    from_statuses: tuple[TransactionStatus, ...],
    to_status: TransactionStatus,
    failure_reason: str | None = None,
) -> bool:
    """Move a transaction's status only if it is still in one of ``from_statuses``."""

    values: dict[str, Any] = {"status": to_status}
    if failure_reason is not None:
        values["failure_reason"] = failure_reason[:255]
    result = db.execute(
        update(Transaction)
        .where(Transaction.id == transaction_id, Transaction.status.in_(from_statuses))
        .values(**values)
    )
    return result.rowcount == 1


def find_transaction(
    db: Session,
    *,
    type: TransactionType,
    external_reference: str,
) -> Transaction | None:
    """Newest entry for a processor reference, preferring one that has not failed."""

    return db.scalar(
        select(Transaction)
        .where(Transaction.type == type, Transaction.external_reference == external_reference)
        .order_by(case((Transaction.status == TransactionStatus.FAILED, 1), else_=0), Transaction.id.desc())
        .limit(1)
    )


def list_transactions(
    db: Session,
    *,
    user_id: int,
    page: int,
    page_size: int,
) -> tuple[int, list[Transaction]]:
    total = int(db.scalar(select(func.count()).select_from(Transaction).where(Transaction.user_id == user_id)) or 0)
    entries = db.scalars(
        select(Transaction)
        .where(Transaction.user_id == user_id)
        .order_by(Transaction.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    ).all()
    return total, list(entries)
