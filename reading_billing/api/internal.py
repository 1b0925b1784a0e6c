from __future__ import annotations

from fastapi import APIRouter, Body, Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from reading_billing.api.dependencies.auth import get_db
from reading_billing.core.config import get_settings
from reading_billing.core.security import verify_shared_secret
from reading_billing.schemas.admin import PayoutBatchResponse, PayoutFailureItem, PayoutRunRequest
from reading_billing.services.payment_gateway import PaymentGateway, get_payment_gateway
from reading_billing.services.payouts import PayoutBatchResult, run_payout_batch

router = APIRouter(prefix="/internal", tags=["internal"])
cron_bearer = HTTPBearer(auto_error=False)


def require_cron_secret(credentials: HTTPAuthorizationCredentials | None = Depends(cron_bearer)) -> None:
    provided = credentials.credentials if credentials is not None else ""
    if not verify_shared_secret(provided, get_settings().cron_secret):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


def batch_response(result: PayoutBatchResult) -> PayoutBatchResponse:
    return PayoutBatchResponse(
        run_key=result.run_key,
        succeeded=result.succeeded,
        failed=result.failed,
        skipped=result.skipped,
        total_amount=result.total_amount,
        errors=[
            PayoutFailureItem(reader_id=error.reader_id, error_code=error.error_code, message=error.message)
            for error in result.errors
        ],
    )


@router.post("/payouts/daily", response_model=PayoutBatchResponse, dependencies=[Depends(require_cron_secret)])
def daily_payouts(
    payload: PayoutRunRequest | None = Body(default=None),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> PayoutBatchResponse:
    result = run_payout_batch(db, gateway=gateway, run_key=payload.run_key if payload is not None else None)
    return batch_response(result)
