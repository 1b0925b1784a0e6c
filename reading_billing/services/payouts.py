from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from reading_billing.core.exceptions import AppException, PayoutAccountInvalidError
from reading_billing.core.observability import metrics
from reading_billing.db.models.enums import (
    PayoutAccountStatus,
    PayoutRunStatus,
    TransactionStatus,
    TransactionType,
)
from reading_billing.db.models.ledger import ReaderProfile, Transaction
from reading_billing.db.models.payouts import PayoutRun
from reading_billing.services.ledger import (
    append_transaction,
    debit_reader_pending,
    find_transaction,
    get_platform_policy,
)
from reading_billing.services.payment_gateway import PaymentGateway
from reading_billing.services.pricing import to_money

logger = logging.getLogger(__name__)


class PayoutReconciliationError(AppException):
    def __init__(self, reader_id: int, transfer_id: str) -> None:
        super().__init__(
            message="Transfer accepted but pending earnings changed underneath it",
            error_code="ERR_PAYOUT_002",
            details={"reader_id": reader_id, "transfer_id": transfer_id},
        )


class PayoutTransferReplayedError(AppException):
    def __init__(self, reader_id: int, transfer_id: str) -> None:
        super().__init__(
            message="Processor returned a transfer that already failed",
            error_code="ERR_PAYOUT_003",
            details={"reader_id": reader_id, "transfer_id": transfer_id},
        )


@dataclass(frozen=True)
class PayoutFailure:
    reader_id: int
    error_code: str
    message: str


@dataclass
class PayoutBatchResult:
    run_key: str
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    total_amount: Decimal = Decimal("0.00")
    errors: list[PayoutFailure] = field(default_factory=list)


def default_run_key(now: datetime) -> str:
    return now.astimezone(UTC).date().isoformat()


def get_or_create_run(db: Session, *, run_key: str, now: datetime) -> PayoutRun:
    run = db.scalar(select(PayoutRun).where(PayoutRun.run_key == run_key))
    if run is not None:
        return run

    run = PayoutRun(run_key=run_key, status=PayoutRunStatus.RUNNING, started_at=now)
    db.add(run)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        run = db.scalar(select(PayoutRun).where(PayoutRun.run_key == run_key))
        if run is None:
            raise
    return run


def eligible_reader_ids(db: Session, *, minimum: Decimal) -> list[int]:
    return list(
        db.scalars(
            select(ReaderProfile.user_id)
            .where(
                ReaderProfile.pending_earnings >= minimum,
                ReaderProfile.payout_account_status == PayoutAccountStatus.ACTIVE,
                ReaderProfile.payout_account_id.is_not(None),
            )
            .order_by(ReaderProfile.user_id.asc())
        ).all()
    )


def already_paid_in_run(db: Session, *, run_id: int, reader_id: int) -> bool:
    entry_id = db.scalar(
        select(Transaction.id).where(
            Transaction.type == TransactionType.PAYOUT,
            Transaction.payout_run_id == run_id,
            Transaction.user_id == reader_id,
            Transaction.status != TransactionStatus.FAILED,
        )
    )
    return entry_id is not None


def payout_attempt(db: Session, *, run_id: int, reader_id: int) -> int:
    failed = db.scalar(
        select(func.count())
        .select_from(Transaction)
        .where(
            Transaction.type == TransactionType.PAYOUT,
            Transaction.payout_run_id == run_id,
            Transaction.user_id == reader_id,
            Transaction.status == TransactionStatus.FAILED,
        )
    )
    return int(failed or 0) + 1


def pay_out_reader(
    db: Session,
    *,
    gateway: PaymentGateway,
    run: PayoutRun,
    reader_id: int,
    minimum: Decimal,
    now: datetime,
) -> Decimal | None:
    """Transfer one reader's pending earnings. Returns the amount, or None when no longer eligible.

    No row lock is held across the processor calls. Pending earnings are only
    reduced after the processor accepted the transfer, by a conditional
    subtraction of the transferred amount, so a settlement that lands between
    the read and the write is kept.

    Each retry inside a run uses a new idempotency key. A transfer id that is
    already on the ledger means the processor replayed an earlier response.
    """

    profile = db.scalar(select(ReaderProfile).where(ReaderProfile.user_id == reader_id))
    if profile is None or profile.payout_account_id is None:
        return None
    amount = to_money(profile.pending_earnings)
    if amount < minimum or profile.payout_account_status != PayoutAccountStatus.ACTIVE:
        return None

    account_id = profile.payout_account_id
    if not gateway.payout_account_enabled(account_id):
        raise PayoutAccountInvalidError(account_id=account_id)

    attempt = payout_attempt(db, run_id=run.id, reader_id=reader_id)
    transfer_id = gateway.create_transfer(
        amount=amount,
        destination=account_id,
        idempotency_key=f"payout-{run.run_key}-{reader_id}-{attempt}",
        metadata={"reader_id": str(reader_id), "run_key": run.run_key, "type": "daily_payout"},
    )

    recorded = find_transaction(db, type=TransactionType.PAYOUT, external_reference=transfer_id)
    if recorded is not None:
        if recorded.status == TransactionStatus.FAILED:
            raise PayoutTransferReplayedError(reader_id, transfer_id)
        return None

    if not debit_reader_pending(db, user_id=reader_id, amount=amount):
        raise PayoutReconciliationError(reader_id, transfer_id)
    profile.last_payout_at = now
    append_transaction(
        db,
        user_id=reader_id,
        type=TransactionType.PAYOUT,
        status=TransactionStatus.PENDING,
        amount=amount,
        external_reference=transfer_id,
        payout_run_id=run.id,
        description=f"Daily payout {run.run_key} (attempt {attempt})",
        details={"destination": account_id, "attempt": attempt},
    )
    return amount


def run_payout_batch(
    db: Session,
    *,
    gateway: PaymentGateway,
    run_key: str | None = None,
    now: datetime | None = None,
) -> PayoutBatchResult:
    """Pay out every eligible reader, one committed unit of work per reader.

    Unlike the other services this commits: each reader's transfer and ledger
    write must survive a failure on the next reader.
    """

    now = now or datetime.now(UTC)
    run_key = run_key or default_run_key(now)
    policy = get_platform_policy(db)
    run = get_or_create_run(db, run_key=run_key, now=now)
    result = PayoutBatchResult(run_key=run_key)

    for reader_id in eligible_reader_ids(db, minimum=policy.minimum_payout):
        if already_paid_in_run(db, run_id=run.id, reader_id=reader_id):
            result.skipped += 1
            continue
        try:
            amount = pay_out_reader(
                db,
                gateway=gateway,
                run=run,
                reader_id=reader_id,
                minimum=policy.minimum_payout,
                now=now,
            )
            db.commit()
        except AppException as exc:
            db.rollback()
            result.failed += 1
            result.errors.append(PayoutFailure(reader_id=reader_id, error_code=exc.error_code, message=exc.message))
            metrics.increment("payouts_total", outcome="failed")
            logger.warning(
                "payout failed",
                extra={"run_key": run_key, "reader_id": reader_id, "error_code": exc.error_code},
            )
            continue
        except Exception as exc:  # noqa: BLE001
            db.rollback()
            result.failed += 1
            result.errors.append(PayoutFailure(reader_id=reader_id, error_code="ERR_INTERNAL", message=str(exc)))
            metrics.increment("payouts_total", outcome="failed")
            logger.exception("payout crashed", extra={"run_key": run_key, "reader_id": reader_id})
            continue

        if amount is None:
            result.skipped += 1
            continue
        result.succeeded += 1
        result.total_amount += amount
        metrics.increment("payouts_total", outcome="succeeded")
        logger.info("payout sent", extra={"run_key": run_key, "reader_id": reader_id, "amount": str(amount)})

    run.status = PayoutRunStatus.COMPLETED
    run.finished_at = now
    # Counters add up over every pass of the run key.
    run.succeeded = run.succeeded + result.succeeded
    run.failed = run.failed + result.failed
    run.skipped = run.skipped + result.skipped
    run.total_amount = to_money(run.total_amount + result.total_amount)
    db.commit()

    logger.info(
        "payout batch finished",
        extra={
            "run_key": run_key,
            "succeeded": result.succeeded,
            "failed": result.failed,
            "skipped": result.skipped,
            "total_amount": str(result.total_amount),
        },
    )
    return result


def get_payout_run(db: Session, *, run_key: str) -> PayoutRun | None:
    return db.scalar(select(PayoutRun).where(PayoutRun.run_key == run_key))
