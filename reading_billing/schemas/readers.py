from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, model_validator

RATE_FIELD = {"gt": Decimal("0"), "le": Decimal("999.99"), "decimal_places": 2}


class ReaderProfileRequest(BaseModel):
    display_name: str = Field(min_length=1, max_length=120)
    chat_rate: Decimal | None = Field(default=None, **RATE_FIELD)
    voice_rate: Decimal | None = Field(default=None, **RATE_FIELD)
    video_rate: Decimal | None = Field(default=None, **RATE_FIELD)

    @model_validator(mode="after")
    def _at_least_one_channel(self) -> "ReaderProfileRequest":
        if self.chat_rate is None and self.voice_rate is None and self.video_rate is None:
            raise ValueError("At least one channel rate is required")
        return self


class ReaderStatusRequest(BaseModel):
    is_online: bool
    is_available: bool


class ReaderProfileResponse(BaseModel):
    user_id: int
    display_name: str
    chat_rate: Decimal | None = None
    voice_rate: Decimal | None = None
    video_rate: Decimal | None = None
    is_online: bool
    is_available: bool
    rating: Decimal
    total_reviews: int
    payout_account_status: str


class ReaderEarningsResponse(BaseModel):
    pending_earnings: Decimal
    total_earnings: Decimal
    total_minutes: int
    last_payout_at: datetime | None = None
    payout_account_status: str


class PayoutAccountLinkResponse(BaseModel):
    account_id: str
    status: str
    onboarding_url: str
