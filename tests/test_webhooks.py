from __future__ import annotations

import inspect
from decimal import Decimal

from fastapi.testclient import TestClient
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from reading_billing.db.models import Transaction, WebhookEvent
from reading_billing.db.models.enums import PayoutAccountStatus, TransactionStatus, TransactionType
from reading_billing.services.payouts import run_payout_batch
from tests.helpers import FakeGateway, client_balance, reader_profile, sign_webhook, webhook_event


def _deliver(client: TestClient, payload: str, signature: str | None = None):
    return client.post(
        "/webhooks/stripe",
        content=payload,
        headers={"Stripe-Signature": signature or sign_webhook(payload), "Content-Type": "application/json"},
    )


def test_topup_is_credited_once_even_when_event_is_replayed(
    client: TestClient,
    db_session: Session,
    make_client,
    auth_headers,
) -> None:
    customer = make_client(email="topup@test.local")
    created = client.post("/me/funds", json={"amount": "25.00"}, headers=auth_headers(customer))
    assert created.status_code == 201
    intent_id = created.json()["payment_intent_id"]
    assert created.json()["status"] == "pending"
    assert client_balance(db_session, customer).balance == Decimal("0.00")

    payload = webhook_event("evt_topup_1", "payment_intent.succeeded", {"id": intent_id, "amount_received": 2500})
    first = _deliver(client, payload)
    replay = _deliver(client, payload)

    assert first.status_code == 200
    assert first.json() == {"status": "credited"}
    assert replay.json() == {"status": "duplicate"}
    assert client_balance(db_session, customer).balance == Decimal("25.00")
    topup = db_session.get(Transaction, created.json()["transaction_id"])
    assert topup.status == TransactionStatus.COMPLETED


def test_second_event_for_the_same_intent_does_not_credit_twice(
    client: TestClient,
    db_session: Session,
    make_client,
) -> None:
    customer = make_client(email="retry@test.local")
    obj = {"id": "pi_external_1", "amount_received": 1000, "metadata": {"user_id": str(customer.id)}}

    first = _deliver(client, webhook_event("evt_a", "payment_intent.succeeded", obj))
    second = _deliver(client, webhook_event("evt_b", "payment_intent.succeeded", obj))

    assert first.json() == {"status": "credited"}
    assert second.json() == {"status": "already_applied"}
    assert client_balance(db_session, customer).balance == Decimal("10.00")


def test_bad_signature_is_rejected_without_side_effects(client: TestClient, db_session: Session, make_client) -> None:
    customer = make_client(email="forged@test.local")
    payload = webhook_event(
        "evt_forged",
        "payment_intent.succeeded",
        {"id": "pi_forged", "amount_received": 50000, "metadata": {"user_id": str(customer.id)}},
    )

    response = _deliver(client, payload, signature=sign_webhook(payload, secret="whsec_wrong"))

    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_WEBHOOK_001"
    assert client_balance(db_session, customer).balance == Decimal("0.00")
    assert db_session.scalar(select(func.count()).select_from(WebhookEvent)) == 0


def test_failed_payment_marks_topup_failed(client: TestClient, db_session: Session, make_client, auth_headers) -> None:
    customer = make_client(email="declined@test.local")
    created = client.post("/me/funds", json={"amount": "10.00"}, headers=auth_headers(customer))
    intent_id = created.json()["payment_intent_id"]

    response = _deliver(
        client,
        webhook_event(
            "evt_fail",
            "payment_intent.payment_failed",
            {"id": intent_id, "last_payment_error": {"message": "Your card was declined."}},
        ),
    )

    assert response.json() == {"status": "failed"}
    topup = db_session.get(Transaction, created.json()["transaction_id"])
    db_session.refresh(topup)
    assert topup.status == TransactionStatus.FAILED
    assert topup.failure_reason == "Your card was declined."
    assert client_balance(db_session, customer).balance == Decimal("0.00")


def test_failed_transfer_returns_amount_to_pending_earnings(
    client: TestClient,
    db_session: Session,
    make_reader,
    gateway: FakeGateway,
) -> None:
    reader = make_reader(
        email="bounce@test.local",
        pending_earnings="30.00",
        payout_account_id="acct_bounce",
        payout_account_status=PayoutAccountStatus.ACTIVE,
    )
    run_payout_batch(db_session, gateway=gateway, run_key="bounce-run")
    assert reader_profile(db_session, reader).pending_earnings == Decimal("0.00")
    transfer_id = gateway.transfers[0]["id"]

    created = _deliver(client, webhook_event("evt_tr_created", "transfer.created", {"id": transfer_id}))
    failed = _deliver(client, webhook_event("evt_tr_failed", "transfer.failed", {"id": transfer_id}))
    again = _deliver(client, webhook_event("evt_tr_reversed", "transfer.reversed", {"id": transfer_id}))

    assert created.json() == {"status": "processing"}
    assert failed.json() == {"status": "restored"}
    assert again.json() == {"status": "already_applied"}
    assert reader_profile(db_session, reader).pending_earnings == Decimal("30.00")
    payout = db_session.scalar(select(Transaction).where(Transaction.type == TransactionType.PAYOUT))
    db_session.refresh(payout)
    assert payout.status == TransactionStatus.FAILED


def test_account_updated_activates_payout_account(client: TestClient, db_session: Session, make_reader) -> None:
    reader = make_reader(
        email="onboarded@test.local",
        payout_account_id="acct_onboarded",
        payout_account_status=PayoutAccountStatus.PENDING,
    )

    response = _deliver(
        client,
        webhook_event(
            "evt_account",
            "account.updated",
            {"id": "acct_onboarded", "payouts_enabled": True, "details_submitted": True, "requirements": {}},
        ),
    )

    assert response.json() == {"status": "updated"}
    assert reader_profile(db_session, reader).payout_account_status == PayoutAccountStatus.ACTIVE


def test_unknown_event_types_are_recorded_and_ignored(client: TestClient, db_session: Session) -> None:
    response = _deliver(client, webhook_event("evt_other", "customer.created", {"id": "cus_1"}))

    assert response.json() == {"status": "ignored"}
    event = db_session.scalar(select(WebhookEvent).where(WebhookEvent.event_id == "evt_other"))
    assert event.outcome == "ignored"


def test_processor_refund_debits_topup_once(client: TestClient, db_session: Session, make_client) -> None:
    customer = make_client(email="refunded-topup@test.local")
    intent = {"id": "pi_refund_me", "amount_received": 1000, "metadata": {"user_id": str(customer.id)}}
    assert _deliver(client, webhook_event("evt_pay", "payment_intent.succeeded", intent)).json() == {
        "status": "credited"
    }

    refund = {"id": "ch_refund_1", "payment_intent": "pi_refund_me", "amount_refunded": 400}
    first = _deliver(client, webhook_event("evt_refund_1", "charge.refunded", refund))
    second = _deliver(client, webhook_event("evt_refund_2", "charge.refunded", refund))

    assert first.json() == {"status": "refunded"}
    assert second.json() == {"status": "already_applied"}
    assert client_balance(db_session, customer).balance == Decimal("6.00")
    entry = db_session.scalar(select(Transaction).where(Transaction.type == TransactionType.REFUND))
    assert entry.amount == Decimal("4.00")
    assert entry.status == TransactionStatus.COMPLETED


def test_processor_refund_larger_than_balance_is_recorded_as_failed(
    client: TestClient,
    db_session: Session,
    make_client,
) -> None:
    customer = make_client(email="spent-topup@test.local")
    intent = {"id": "pi_spent", "amount_received": 1000, "metadata": {"user_id": str(customer.id)}}
    _deliver(client, webhook_event("evt_spent_pay", "payment_intent.succeeded", intent))
    balance = client_balance(db_session, customer)
    balance.balance = Decimal("3.00")
    db_session.commit()

    response = _deliver(
        client,
        webhook_event("evt_spent_refund", "charge.refunded", {"id": "ch_spent", "payment_intent": "pi_spent"}),
    )

    assert response.json() == {"status": "refund_failed"}
    assert client_balance(db_session, customer).balance == Decimal("3.00")
    entry = db_session.scalar(select(Transaction).where(Transaction.type == TransactionType.REFUND))
    assert entry.status == TransactionStatus.FAILED
    assert entry.failure_reason == "insufficient_balance"


def test_each_partial_refund_debits_only_the_new_amount(
    client: TestClient,
    db_session: Session,
    make_client,
) -> None:
    customer = make_client(email="partial-refunds@test.local")
    intent = {"id": "pi_partial", "amount_received": 10000, "metadata": {"user_id": str(customer.id)}}
    _deliver(client, webhook_event("evt_partial_pay", "payment_intent.succeeded", intent))

    def refunded(event_id: str, cumulative_cents: int):
        obj = {"id": "ch_partial", "payment_intent": "pi_partial", "amount_refunded": cumulative_cents}
        return _deliver(client, webhook_event(event_id, "charge.refunded", obj)).json()

    assert refunded("evt_partial_1", 2000) == {"status": "refunded"}
    assert refunded("evt_partial_2", 5000) == {"status": "refunded"}
    assert refunded("evt_partial_3", 5000) == {"status": "already_applied"}

    assert client_balance(db_session, customer).balance == Decimal("50.00")
    amounts = db_session.scalars(
        select(Transaction.amount).where(Transaction.type == TransactionType.REFUND).order_by(Transaction.id)
    ).all()
    assert amounts == [Decimal("20.00"), Decimal("30.00")]


def test_webhook_handler_runs_in_the_threadpool() -> None:
    from reading_billing.api.payments import stripe_webhook

    assert not inspect.iscoroutinefunction(stripe_webhook)
