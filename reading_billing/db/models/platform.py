from __future__ import annotations

from decimal import Decimal

from sqlalchemy import Numeric
from sqlalchemy.orm import Mapped, mapped_column

from reading_billing.db.models.mixins import TimestampMixin
from reading_billing.db.session import Base

PLATFORM_SETTINGS_SINGLETON_ID = 1
DEFAULT_PLATFORM_FEE_BPS = 3000
DEFAULT_MINIMUM_PAYOUT = Decimal("15.00")
DEFAULT_MIN_PREPAID_MINUTES = 2
DEFAULT_SESSION_START_TIMEOUT_SECONDS = 120


class PlatformSettings(TimestampMixin, Base):
    __tablename__ = "platform_settings"

    id: Mapped[int] = mapped_column(primary_key=True)
    platform_fee_bps: Mapped[int] = mapped_column(
        nullable=False,
        default=DEFAULT_PLATFORM_FEE_BPS,
        server_default=str(DEFAULT_PLATFORM_FEE_BPS),
    )
    minimum_payout: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=DEFAULT_MINIMUM_PAYOUT,
        server_default=str(DEFAULT_MINIMUM_PAYOUT),
    )
    min_prepaid_minutes: Mapped[int] = mapped_column(
        nullable=False,
        default=DEFAULT_MIN_PREPAID_MINUTES,
        server_default=str(DEFAULT_MIN_PREPAID_MINUTES),
    )
    session_start_timeout_seconds: Mapped[int] = mapped_column(
        nullable=False,
        default=DEFAULT_SESSION_START_TIMEOUT_SECONDS,
        server_default=str(DEFAULT_SESSION_START_TIMEOUT_SECONDS),
    )
