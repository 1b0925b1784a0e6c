from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from reading_billing.api.dependencies.auth import get_db
from reading_billing.core.exceptions import AppException
from reading_billing.services.payment_gateway import PaymentGateway, get_payment_gateway
from reading_billing.services.webhooks import handle_event

router = APIRouter(tags=["payments"])
logger = logging.getLogger(__name__)


async def raw_body(request: Request) -> bytes:
    """Signature verification needs the exact bytes the processor sent."""

    return await request.body()


@router.post("/webhooks/stripe")
def stripe_webhook(
    payload: bytes = Depends(raw_body),
    stripe_signature: str = Header(default="", alias="Stripe-Signature"),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> dict[str, str]:
    event = gateway.parse_webhook(payload, stripe_signature)
    try:
        outcome = handle_event(db, event)
        db.commit()
    except AppException:
        db.rollback()
        raise
    except IntegrityError:
        # A concurrent delivery of the same event won the inbox insert.
        db.rollback()
        logger.info("duplicate webhook delivery", extra={"event_id": event["id"]})
        outcome = "duplicate"
    return {"status": outcome}
