from __future__ import annotations

from decimal import Decimal

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from reading_billing.core.security import create_access_token
from reading_billing.db.models import User
from reading_billing.db.models.enums import Role
from reading_billing.main import app
from reading_billing.services.payment_gateway import PaymentGateway, get_payment_gateway
from tests.helpers import FakeGateway


def test_me_requires_authentication(client: TestClient) -> None:
    response = client.get("/me")

    assert response.status_code == 401


def test_first_request_provisions_user_from_token_claims(client: TestClient, db_session: Session) -> None:
    token = create_access_token(user_id=4242, email="fresh@test.local", role="reader")

    response = client.get("/me", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 200
    assert response.json() == {"user_id": 4242, "email": "fresh@test.local", "role": "reader"}
    user = db_session.get(User, 4242)
    assert user is not None
    assert user.role == Role.READER


def test_token_with_unknown_role_is_rejected(client: TestClient) -> None:
    token = create_access_token(user_id=77, email="odd@test.local", role="superuser")

    response = client.get("/me", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401
    assert response.json()["detail"] == "User not available"


def test_balance_of_a_new_client_is_zero(client: TestClient, create_user, auth_headers) -> None:
    customer = create_user(email="zero@test.local")

    response = client.get("/me/balance", headers=auth_headers(customer))

    assert response.status_code == 200
    body = response.json()
    assert Decimal(body["balance"]) == Decimal("0")
    assert Decimal(body["available"]) == Decimal("0")
    assert body["currency"] == "usd"


def test_add_funds_validates_amount_bounds(client: TestClient, make_client, auth_headers) -> None:
    customer = make_client(email="bounds@test.local")

    too_small = client.post("/me/funds", json={"amount": "4.99"}, headers=auth_headers(customer))
    too_large = client.post("/me/funds", json={"amount": "500.01"}, headers=auth_headers(customer))

    assert too_small.status_code == 422
    assert too_large.status_code == 422


def test_add_funds_opens_intent_and_lists_pending_topup(
    client: TestClient,
    make_client,
    auth_headers,
    gateway: FakeGateway,
) -> None:
    customer = make_client(email="intent@test.local")

    created = client.post("/me/funds", json={"amount": "20.00"}, headers=auth_headers(customer))
    history = client.get("/me/transactions", headers=auth_headers(customer))

    assert created.status_code == 201
    assert created.json()["client_secret"] == "pi_test_1_secret"
    assert gateway.intents[0]["amount"] == Decimal("20.00")
    assert history.json()["total"] == 1
    item = history.json()["items"][0]
    assert item["type"] == "topup"
    assert item["status"] == "pending"
    assert item["external_reference"] == "pi_test_1"


def test_processor_outage_surfaces_as_bad_gateway(client: TestClient, make_client, auth_headers) -> None:
    app.dependency_overrides[get_payment_gateway] = lambda: PaymentGateway(secret_key="", webhook_secret="")
    customer = make_client(email="outage@test.local")

    response = client.post("/me/funds", json={"amount": "20.00"}, headers=auth_headers(customer))

    assert response.status_code == 502
    assert response.json()["error_code"] == "ERR_PROCESSOR_001"
