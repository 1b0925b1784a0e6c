from __future__ import annotations

import hashlib
import hmac
import json
import time
from typing import Any

from sqlalchemy.orm import Session

from reading_billing.core.exceptions import ExternalProcessorError
from reading_billing.db.models import ClientBalance, ReaderProfile, User
from reading_billing.services.payment_gateway import PaymentGateway, PaymentIntentHandle

WEBHOOK_SECRET = "whsec_test_secret"


class FakeGateway(PaymentGateway):
    """Records processor calls instead of talking to Stripe. Webhook verification stays real."""

    def __init__(self) -> None:
        super().__init__(secret_key="sk_test_fake", webhook_secret=WEBHOOK_SECRET)
        self.intents: list[dict[str, Any]] = []
        self.transfers: list[dict[str, Any]] = []
        self.disabled_accounts: set[str] = set()
        self.failing_destinations: set[str] = set()
        self.created_accounts: list[str] = []

    def create_topup_intent(self, *, amount, user_id, idempotency_key, payment_method_id=None, customer_id=None):
        intent_id = f"pi_test_{len(self.intents) + 1}"
        self.intents.append({"id": intent_id, "amount": amount, "user_id": user_id, "key": idempotency_key})
        return PaymentIntentHandle(id=intent_id, client_secret=f"{intent_id}_secret", status="requires_payment_method")

    def payout_account_enabled(self, account_id: str) -> bool:
        return account_id not in self.disabled_accounts

    def create_transfer(self, *, amount, destination, idempotency_key, metadata):
        if destination in self.failing_destinations:
            raise ExternalProcessorError("card_declined", operation="create_transfer")
        transfer_id = f"tr_test_{len(self.transfers) + 1}"
        self.transfers.append(
            {"id": transfer_id, "amount": amount, "destination": destination, "key": idempotency_key}
        )
        return transfer_id

    def create_payout_account(self, *, email: str, user_id: int) -> str:
        account_id = f"acct_test_{user_id}"
        self.created_accounts.append(account_id)
        return account_id

    def create_onboarding_link(self, *, account_id: str, refresh_url: str, return_url: str) -> str:
        return f"https://connect.test/onboarding/{account_id}"


def sign_webhook(payload: str, *, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    timestamp = timestamp if timestamp is not None else int(time.time())
    signature = hmac.new(secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def webhook_event(event_id: str, event_type: str, obj: dict[str, Any]) -> str:
    return json.dumps({"id": event_id, "type": event_type, "data": {"object": obj}})


def client_balance(db_session: Session, user: User) -> ClientBalance:
    db_session.expire_all()
    return db_session.query(ClientBalance).filter_by(user_id=user.id).one()


def reader_profile(db_session: Session, user: User) -> ReaderProfile:
    db_session.expire_all()
    return db_session.query(ReaderProfile).filter_by(user_id=user.id).one()
