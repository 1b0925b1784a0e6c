"""
Payment processor event handling.

Events are recorded in an inbox table keyed by the processor's event id, and every
handler additionally gates its ledger write on a conditional status transition,
so a replayed event finds nothing left to do.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from reading_billing.core.observability import metrics
from reading_billing.db.models.enums import (
    UNSETTLED_TRANSACTION_STATUSES,
    TransactionStatus,
    TransactionType,
)
from reading_billing.db.models.ledger import ReaderProfile, Transaction
from reading_billing.db.models.payouts import WebhookEvent
from reading_billing.services.ledger import (
    append_transaction,
    credit_balance,
    debit_balance_if_covered,
    find_transaction,
    restore_reader_pending,
    transition_transaction,
)
from reading_billing.services.pricing import from_cents, to_money
from reading_billing.services.readers import payout_status_from_account

logger = logging.getLogger(__name__)

EventHandler = Callable[[Session, dict[str, Any]], str]


def is_duplicate_event(db: Session, event_id: str) -> bool:
    return db.scalar(select(WebhookEvent.id).where(WebhookEvent.event_id == event_id)) is not None


def _handle_payment_succeeded(db: Session, obj: dict[str, Any]) -> str:
    intent_id = obj.get("id")
    if not intent_id:
        return "ignored"

    entry = find_transaction(db, type=TransactionType.TOPUP, external_reference=intent_id)
    if entry is None:
        user_id_raw = (obj.get("metadata") or {}).get("user_id")
        try:
            user_id = int(user_id_raw)
        except (TypeError, ValueError):
            logger.warning("payment intent without user", extra={"payment_intent_id": intent_id})
            return "ignored"
        entry = append_transaction(
            db,
            user_id=user_id,
            type=TransactionType.TOPUP,
            status=TransactionStatus.PENDING,
            amount=from_cents(int(obj.get("amount_received") or obj.get("amount") or 0)),
            external_reference=intent_id,
            description="Account top-up",
        )

    if not transition_transaction(
        db,
        transaction_id=entry.id,
        from_statuses=UNSETTLED_TRANSACTION_STATUSES,
        to_status=TransactionStatus.COMPLETED,
    ):
        return "already_applied"

    credit_balance(db, user_id=entry.user_id, amount=entry.amount)
    logger.info("topup credited", extra={"user_id": entry.user_id, "amount": str(entry.amount)})
    return "credited"


def _handle_payment_failed(db: Session, obj: dict[str, Any]) -> str:
    entry = find_transaction(db, type=TransactionType.TOPUP, external_reference=str(obj.get("id") or ""))
    if entry is None:
        return "ignored"
    error = obj.get("last_payment_error") or {}
    reason = error.get("message") if isinstance(error, dict) else None
    if not transition_transaction(
        db,
        transaction_id=entry.id,
        from_statuses=UNSETTLED_TRANSACTION_STATUSES,
        to_status=TransactionStatus.FAILED,
        failure_reason=reason or "payment_failed",
    ):
        return "already_applied"
    return "failed"


def _handle_account_updated(db: Session, obj: dict[str, Any]) -> str:
    account_id = obj.get("id")
    if not account_id:
        return "ignored"
    result = db.execute(
        update(ReaderProfile)
        .where(ReaderProfile.payout_account_id == account_id)
        .values(payout_account_status=payout_status_from_account(obj))
    )
    return "updated" if result.rowcount else "ignored"


def _payout_entry(db: Session, obj: dict[str, Any]) -> Transaction | None:
    return find_transaction(db, type=TransactionType.PAYOUT, external_reference=str(obj.get("id") or ""))


def _handle_transfer_created(db: Session, obj: dict[str, Any]) -> str:
    entry = _payout_entry(db, obj)
    if entry is None:
        return "ignored"
    moved = transition_transaction(
        db,
        transaction_id=entry.id,
        from_statuses=(TransactionStatus.PENDING,),
        to_status=TransactionStatus.PROCESSING,
    )
    return "processing" if moved else "already_applied"


def _handle_transfer_paid(db: Session, obj: dict[str, Any]) -> str:
    entry = _payout_entry(db, obj)
    if entry is None:
        return "ignored"
    moved = transition_transaction(
        db,
        transaction_id=entry.id,
        from_statuses=UNSETTLED_TRANSACTION_STATUSES,
        to_status=TransactionStatus.COMPLETED,
    )
    return "completed" if moved else "already_applied"


def _handle_transfer_failed(db: Session, obj: dict[str, Any]) -> str:
    entry = _payout_entry(db, obj)
    if entry is None:
        return "ignored"
    if not transition_transaction(
        db,
        transaction_id=entry.id,
        from_statuses=UNSETTLED_TRANSACTION_STATUSES,
        to_status=TransactionStatus.FAILED,
        failure_reason=str(obj.get("failure_message") or "transfer_failed"),
    ):
        return "already_applied"

    restore_reader_pending(db, user_id=entry.user_id, amount=entry.amount)
    logger.warning("payout returned to pending", extra={"reader_id": entry.user_id, "amount": str(entry.amount)})
    return "restored"


def _refunded_so_far(db: Session, topup_id: int) -> Decimal:
    total = db.scalar(
        select(func.coalesce(func.sum(Transaction.amount), 0)).where(
            Transaction.type == TransactionType.REFUND,
            Transaction.refund_of_id == topup_id,
        )
    )
    return to_money(Decimal(str(total or 0)))


def _handle_charge_refunded(db: Session, obj: dict[str, Any]) -> str:
    topup = find_transaction(db, type=TransactionType.TOPUP, external_reference=str(obj.get("payment_intent") or ""))
    if topup is None or topup.status != TransactionStatus.COMPLETED:
        return "ignored"
    # Serializes refund events for the same top-up.
    db.scalar(select(Transaction.id).where(Transaction.id == topup.id).with_for_update())

    # amount_refunded is cumulative over every refund of the charge. Failed entries count as applied.
    refunded_total = from_cents(int(obj.get("amount_refunded") or 0)) or topup.amount
    refunded_total = min(refunded_total, topup.amount)
    amount = to_money(refunded_total - _refunded_so_far(db, topup.id))
    if amount <= 0:
        return "already_applied"

    debited = debit_balance_if_covered(db, user_id=topup.user_id, amount=amount, count_as_spend=False)
    append_transaction(
        db,
        user_id=topup.user_id,
        type=TransactionType.REFUND,
        status=TransactionStatus.COMPLETED if debited else TransactionStatus.FAILED,
        amount=amount,
        refund_of_id=topup.id,
        external_reference=str(obj.get("id") or ""),
        description="Top-up refunded by processor",
        details={"amount_refunded_total": str(refunded_total)},
        failure_reason=None if debited else "insufficient_balance",
    )
    return "refunded" if debited else "refund_failed"


EVENT_HANDLERS: dict[str, EventHandler] = {
    "payment_intent.succeeded": _handle_payment_succeeded,
    "payment_intent.payment_failed": _handle_payment_failed,
    "account.updated": _handle_account_updated,
    "transfer.created": _handle_transfer_created,
    "transfer.paid": _handle_transfer_paid,
    "transfer.failed": _handle_transfer_failed,
    "transfer.reversed": _handle_transfer_failed,
    "charge.refunded": _handle_charge_refunded,
}


def handle_event(db: Session, event: dict[str, Any]) -> str:
    """Apply one verified processor event. Returns a short outcome label."""

    event_id = str(event["id"])
    event_type = str(event["type"])
    if is_duplicate_event(db, event_id):
        metrics.increment("webhook_events_total", type=event_type, outcome="duplicate")
        logger.info("webhook duplicate", extra={"event_id": event_id, "event_type": event_type})
        return "duplicate"

    handler = EVENT_HANDLERS.get(event_type)
    obj = (event.get("data") or {}).get("object") or {}
    outcome = handler(db, obj) if handler is not None else "ignored"

    db.add(WebhookEvent(event_id=event_id, event_type=event_type, outcome=outcome))
    db.flush()
    metrics.increment("webhook_events_total", type=event_type, outcome=outcome)
    logger.info("webhook handled", extra={"event_id": event_id, "event_type": event_type, "outcome": outcome})
    return outcome
