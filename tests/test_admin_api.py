from __future__ import annotations

from decimal import Decimal

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from reading_billing.db.models.enums import Role
from reading_billing.services.settlement import SettlementContext, settle


def test_finance_summary_requires_admin(client: TestClient, make_client, auth_headers) -> None:
    customer = make_client(email="nosy@test.local")

    response = client.get("/admin/finance/summary", headers=auth_headers(customer))

    assert response.status_code == 403
    assert response.json()["detail"] == "Insufficient role"


def test_finance_summary_reports_ledger_totals(
    client: TestClient,
    db_session: Session,
    create_user,
    make_client,
    make_reader,
    auth_headers,
) -> None:
    admin = create_user(email="finance-admin@test.local", role=Role.ADMIN)
    customer = make_client(email="finance-client@test.local", balance="30.00")
    reader = make_reader(email="finance-reader@test.local")
    settle(
        db_session,
        payer_id=customer.id,
        payee_id=reader.id,
        amount=Decimal("10.00"),
        context=SettlementContext(kind="gift", description="Gift: 1x Moon"),
    )
    db_session.commit()

    response = client.get("/admin/finance/summary", headers=auth_headers(admin))

    assert response.status_code == 200
    body = response.json()
    assert body["total_transactions"] == 2
    assert Decimal(body["client_balances_outstanding"]) == Decimal("20.00")
    assert Decimal(body["reader_pending_earnings"]) == Decimal("7.00")
    assert Decimal(body["platform_fees_collected"]) == Decimal("3.00")
    assert Decimal(body["payouts_in_flight"]) == Decimal("0.00")
    assert body["failed_charges"] == 0


def test_health_and_request_id(client: TestClient) -> None:
    response = client.get("/health", headers={"X-Request-ID": "req-123"})

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "reading-billing"}
    assert response.headers["X-Request-ID"] == "req-123"
