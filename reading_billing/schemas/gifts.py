from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, Field


class GiftResponse(BaseModel):
    code: str
    name: str
    price: Decimal


class GiftCatalogResponse(BaseModel):
    gifts: list[GiftResponse]


class SendGiftRequest(BaseModel):
    reader_id: int = Field(gt=0)
    gift_code: str = Field(min_length=1, max_length=40)
    quantity: int = Field(default=1, ge=1, le=100)
    message: str | None = Field(default=None, max_length=200)


class SendGiftResponse(BaseModel):
    amount: Decimal
    platform_fee: Decimal
    reader_share: Decimal
    charge_transaction_id: int
