from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class AdminFinanceSummaryResponse(BaseModel):
    total_transactions: int
    client_balances_outstanding: Decimal
    reader_pending_earnings: Decimal
    platform_fees_collected: Decimal
    payouts_in_flight: Decimal
    failed_charges: int


class PayoutFailureItem(BaseModel):
    reader_id: int
    error_code: str
    message: str


class PayoutBatchResponse(BaseModel):
    run_key: str
    succeeded: int
    failed: int
    skipped: int
    total_amount: Decimal
    errors: list[PayoutFailureItem]


class PayoutRunResponse(BaseModel):
    run_key: str
    status: str
    started_at: datetime
    finished_at: datetime | None = None
    succeeded: int
    failed: int
    skipped: int
    total_amount: Decimal


class PayoutRunRequest(BaseModel):
    run_key: str | None = Field(default=None, min_length=1, max_length=64)


class RefundRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=255)


class RefundResponse(BaseModel):
    session_id: int
    client_refund_id: int
    reader_reversal_id: int
    amount: Decimal
    reader_share: Decimal
