from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from reading_billing.db.models.enums import ChannelType


class StartSessionRequest(BaseModel):
    reader_id: int = Field(gt=0)
    channel_type: ChannelType


class EndSessionRequest(BaseModel):
    rating: int | None = Field(default=None, ge=1, le=5)
    review: str | None = Field(default=None, max_length=1000)


class SessionResponse(BaseModel):
    id: int
    client_id: int
    reader_id: int
    channel_type: ChannelType
    status: str
    channel_name: str
    rate_per_minute: Decimal
    requested_at: datetime
    started_at: datetime | None = None
    ended_at: datetime | None = None
    duration_seconds: int | None = None
    billable_minutes: int | None = None
    total_cost: Decimal | None = None
    platform_fee: Decimal | None = None
    client_rating: int | None = None
    failure_reason: str | None = None


class SessionPageResponse(BaseModel):
    page: int
    page_size: int
    total: int
    items: list[SessionResponse]
