from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from reading_billing.api.dependencies.auth import get_db, require_roles
from reading_billing.core.exceptions import AppException, ResourceNotFoundError
from reading_billing.db.models.auth import User
from reading_billing.db.models.enums import Role
from reading_billing.schemas.admin import (
    AdminFinanceSummaryResponse,
    PayoutRunResponse,
    RefundRequest,
    RefundResponse,
)
from reading_billing.services.finance import get_finance_summary
from reading_billing.services.payouts import get_payout_run
from reading_billing.services.refunds import refund_session_charge

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/finance/summary", response_model=AdminFinanceSummaryResponse)
def admin_finance_summary(
    _: User = Depends(require_roles(Role.ADMIN)),
    db: Session = Depends(get_db),
) -> AdminFinanceSummaryResponse:
    summary = get_finance_summary(db)
    return AdminFinanceSummaryResponse(
        total_transactions=summary.total_transactions,
        client_balances_outstanding=summary.client_balances_outstanding,
        reader_pending_earnings=summary.reader_pending_earnings,
        platform_fees_collected=summary.platform_fees_collected,
        payouts_in_flight=summary.payouts_in_flight,
        failed_charges=summary.failed_charges,
    )


@router.get("/payout-runs/{run_key}", response_model=PayoutRunResponse)
def payout_run_status(
    run_key: str,
    _: User = Depends(require_roles(Role.ADMIN)),
    db: Session = Depends(get_db),
) -> PayoutRunResponse:
    run = get_payout_run(db, run_key=run_key)
    if run is None:
        raise ResourceNotFoundError("Payout run", run_key)
    return PayoutRunResponse(
        run_key=run.run_key,
        status=run.status.value,
        started_at=run.started_at,
        finished_at=run.finished_at,
        succeeded=run.succeeded,
        failed=run.failed,
        skipped=run.skipped,
        total_amount=run.total_amount,
    )


@router.post("/readings/{session_id}/refund", response_model=RefundResponse)
def refund_reading(
    session_id: int,
    payload: RefundRequest,
    current_user: User = Depends(require_roles(Role.ADMIN)),
    db: Session = Depends(get_db),
) -> RefundResponse:
    try:
        result = refund_session_charge(db, session_id=session_id, actor=current_user, reason=payload.reason)
    except AppException:
        db.rollback()
        raise
    db.commit()
    return RefundResponse(
        session_id=result.session_id,
        client_refund_id=result.client_refund_id,
        reader_reversal_id=result.reader_reversal_id,
        amount=result.amount,
        reader_share=result.reader_share,
    )
