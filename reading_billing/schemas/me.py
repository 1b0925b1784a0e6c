from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class MeResponse(BaseModel):
    user_id: int
    email: str
    role: str


class BalanceResponse(BaseModel):
    balance: Decimal
    pending_charges: Decimal
    available: Decimal
    total_spent: Decimal
    currency: str


class TransactionResponse(BaseModel):
    id: int
    type: str
    status: str
    amount: Decimal
    platform_fee: Decimal | None = None
    currency: str
    session_id: int | None = None
    gift_id: int | None = None
    refund_of_id: int | None = None
    external_reference: str | None = None
    description: str | None = None
    failure_reason: str | None = None
    created_at: datetime


class TransactionPageResponse(BaseModel):
    page: int
    page_size: int
    total: int
    items: list[TransactionResponse]


class AddFundsRequest(BaseModel):
    amount: Decimal = Field(ge=Decimal("5.00"), le=Decimal("500.00"), decimal_places=2)
    payment_method_id: str | None = Field(default=None, max_length=255)


class AddFundsResponse(BaseModel):
    transaction_id: int
    payment_intent_id: str
    client_secret: str | None = None
    amount: Decimal
    status: str
