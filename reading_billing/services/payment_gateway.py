"""
Payment processor boundary.

All Stripe calls go through ``PaymentGateway`` so the ledger code only sees plain
values and our own exceptions. Amounts cross this boundary as ``Decimal`` dollars
and are converted to integer cents here.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

import stripe

from reading_billing.core.config import Settings, get_settings
from reading_billing.core.exceptions import ExternalProcessorError, InvalidWebhookSignatureError
from reading_billing.services.pricing import to_cents

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentIntentHandle:
    id: str
    client_secret: str | None
    status: str


class PaymentGateway:
    def __init__(
        self,
        *,
        secret_key: str,
        webhook_secret: str,
        currency: str = "usd",
        webhook_tolerance_seconds: int = 300,
    ) -> None:
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.currency = currency
        self.webhook_tolerance_seconds = webhook_tolerance_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> "PaymentGateway":
        return cls(
            secret_key=settings.stripe_secret_key,
            webhook_secret=settings.stripe_webhook_secret,
            currency=settings.currency,
            webhook_tolerance_seconds=settings.stripe_webhook_tolerance_seconds,
        )

    def is_configured(self) -> bool:
        return bool(self.secret_key.strip())

    def _client(self, operation: str) -> Any:
        if not self.is_configured():
            raise ExternalProcessorError("Payment processor is not configured", operation=operation)
        stripe.api_key = self.secret_key
        return stripe

    def create_topup_intent(
        self,
        *,
        amount: Decimal,
        user_id: int,
        idempotency_key: str,
        payment_method_id: str | None = None,
        customer_id: str | None = None,
    ) -> PaymentIntentHandle:
        client = self._client("create_topup_intent")
        kwargs: dict[str, Any] = {
            "amount": to_cents(amount),
            "currency": self.currency,
            "metadata": {"payment_type": "wallet_topup", "user_id": str(user_id)},
            "automatic_payment_methods": {"enabled": True, "allow_redirects": "never"},
            "idempotency_key": idempotency_key,
        }
        if customer_id:
            kwargs["customer"] = customer_id
        if payment_method_id:
            kwargs["payment_method"] = payment_method_id
            kwargs["confirm"] = True
        try:
            intent = client.PaymentIntent.create(**kwargs)
        except stripe.StripeError as exc:
            logger.warning("payment intent creation failed", extra={"user_id": user_id, "error": str(exc)})
            raise ExternalProcessorError(operation="create_topup_intent") from exc
        return PaymentIntentHandle(id=intent.id, client_secret=intent.client_secret, status=intent.status)

    def payout_account_enabled(self, account_id: str) -> bool:
        client = self._client("retrieve_account")
        try:
            account = client.Account.retrieve(account_id)
        except stripe.InvalidRequestError:
            return False
        except stripe.StripeError as exc:
            raise ExternalProcessorError(operation="retrieve_account") from exc
        return bool(account.payouts_enabled)

    def create_transfer(
        self,
        *,
        amount: Decimal,
        destination: str,
        idempotency_key: str,
        metadata: dict[str, str],
    ) -> str:
        client = self._client("create_transfer")
        try:
            transfer = client.Transfer.create(
                amount=to_cents(amount),
                currency=self.currency,
                destination=destination,
                metadata=metadata,
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as exc:
            raise ExternalProcessorError(str(exc) or "Transfer request failed", operation="create_transfer") from exc
        return str(transfer.id)

    def create_payout_account(self, *, email: str, user_id: int) -> str:
        client = self._client("create_account")
        try:
            account = client.Account.create(
                type="express",
                email=email,
                capabilities={"transfers": {"requested": True}},
                metadata={"user_id": str(user_id)},
            )
        except stripe.StripeError as exc:
            raise ExternalProcessorError(operation="create_account") from exc
        return str(account.id)

    def create_onboarding_link(self, *, account_id: str, refresh_url: str, return_url: str) -> str:
        client = self._client("create_account_link")
        try:
            link = client.AccountLink.create(
                account=account_id,
                refresh_url=refresh_url,
                return_url=return_url,
                type="account_onboarding",
            )
        except stripe.StripeError as exc:
            raise ExternalProcessorError(operation="create_account_link") from exc
        return str(link.url)

    def parse_webhook(self, payload: bytes, signature_header: str) -> dict[str, Any]:
        """Verify the ``Stripe-Signature`` header and decode the event body."""

        if not self.webhook_secret or not signature_header:
            raise InvalidWebhookSignatureError("Missing webhook secret or signature header")
        try:
            text = payload.decode("utf-8")
            stripe.WebhookSignature.verify_header(
                text,
                signature_header,
                self.webhook_secret,
                self.webhook_tolerance_seconds,
            )
            event = json.loads(text)
        except stripe.SignatureVerificationError as exc:
            raise InvalidWebhookSignatureError() from exc
        except (UnicodeDecodeError, ValueError) as exc:
            raise InvalidWebhookSignatureError("Invalid webhook payload") from exc

        if not isinstance(event, dict) or "id" not in event or "type" not in event:
            raise InvalidWebhookSignatureError("Invalid webhook payload")
        return event


def get_payment_gateway() -> PaymentGateway:
    return PaymentGateway.from_settings(get_settings())
