from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal

from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.orm import Session

from reading_billing.db.models import Transaction, User
from reading_billing.db.models.enums import ChannelType, PayoutAccountStatus, Role, TransactionType
from reading_billing.services.payouts import run_payout_batch
from reading_billing.services.readings import end_session, start_session
from tests.helpers import FakeGateway, client_balance, reader_profile

STARTED_AT = datetime(2026, 3, 1, 18, 0, tzinfo=UTC)


def _completed_session(db_session: Session, customer: User, reader: User, seconds: int) -> int:
    reading = start_session(
        db_session,
        client=customer,
        reader_user_id=reader.id,
        channel_type=ChannelType.CHAT,
        now=STARTED_AT,
    )
    result = end_session(
        db_session,
        session_id=reading.id,
        actor=customer,
        now=STARTED_AT + timedelta(seconds=seconds),
    )
    db_session.commit()
    assert result.settled
    return reading.id


def test_admin_refund_reverses_charge_and_earning(
    client: TestClient,
    db_session: Session,
    create_user,
    make_client,
    make_reader,
    auth_headers,
) -> None:
    admin = create_user(email="refund-admin@test.local", role=Role.ADMIN)
    customer = make_client(email="refund-client@test.local", balance="20.00")
    reader = make_reader(email="refund-reader@test.local", chat_rate="5.00")
    session_id = _completed_session(db_session, customer, reader, 120)

    response = client.post(
        f"/admin/readings/{session_id}/refund",
        json={"reason": "Connection dropped"},
        headers=auth_headers(admin),
    )
    repeat = client.post(
        f"/admin/readings/{session_id}/refund",
        json={"reason": "Connection dropped"},
        headers=auth_headers(admin),
    )

    assert response.status_code == 200
    assert Decimal(response.json()["amount"]) == Decimal("10.00")
    assert Decimal(response.json()["reader_share"]) == Decimal("7.00")
    assert repeat.status_code == 409
    assert repeat.json()["error_code"] == "ERR_REFUND_001"

    balance = client_balance(db_session, customer)
    assert balance.balance == Decimal("20.00")
    assert balance.total_spent == Decimal("0.00")
    profile = reader_profile(db_session, reader)
    assert profile.pending_earnings == Decimal("0.00")
    assert profile.total_earnings == Decimal("0.00")

    refunds = db_session.scalars(select(Transaction).where(Transaction.type == TransactionType.REFUND)).all()
    assert {entry.user_id for entry in refunds} == {customer.id, reader.id}
    assert all(entry.refund_of_id is not None for entry in refunds)


def test_refund_after_payout_is_refused(
    client: TestClient,
    db_session: Session,
    create_user,
    make_client,
    make_reader,
    auth_headers,
    gateway: FakeGateway,
) -> None:
    admin = create_user(email="late-admin@test.local", role=Role.ADMIN)
    customer = make_client(email="late-client@test.local", balance="50.00")
    reader = make_reader(
        email="late-reader@test.local",
        chat_rate="10.00",
        payout_account_id="acct_late",
        payout_account_status=PayoutAccountStatus.ACTIVE,
    )
    session_id = _completed_session(db_session, customer, reader, 180)
    run_payout_batch(db_session, gateway=gateway, run_key="late-run")

    response = client.post(
        f"/admin/readings/{session_id}/refund",
        json={"reason": "Too late"},
        headers=auth_headers(admin),
    )

    assert response.status_code == 409
    assert client_balance(db_session, customer).balance == Decimal("20.00")


def test_refund_requires_admin(client: TestClient, make_client, auth_headers) -> None:
    customer = make_client(email="not-admin@test.local")

    response = client.post("/admin/readings/1/refund", json={"reason": "please"}, headers=auth_headers(customer))

    assert response.status_code == 403
