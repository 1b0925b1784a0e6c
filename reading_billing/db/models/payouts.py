from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, String
from sqlalchemy import Enum as SqlEnum
from sqlalchemy.orm import Mapped, mapped_column

from reading_billing.db.models.enums import PayoutRunStatus
from reading_billing.db.models.ledger import MONEY
from reading_billing.db.models.mixins import TimestampMixin
from reading_billing.db.session import Base


class PayoutRun(TimestampMixin, Base):
    __tablename__ = "payout_runs"

    id: Mapped[int] = mapped_column(primary_key=True)
    run_key: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    status: Mapped[PayoutRunStatus] = mapped_column(
        SqlEnum(PayoutRunStatus, name="payout_run_status_enum", native_enum=False),
        nullable=False,
    )
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    succeeded: Mapped[int] = mapped_column(nullable=False, default=0, server_default="0")
    failed: Mapped[int] = mapped_column(nullable=False, default=0, server_default="0")
    skipped: Mapped[int] = mapped_column(nullable=False, default=0, server_default="0")
    total_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"), server_default="0")


class WebhookEvent(TimestampMixin, Base):
    """Inbox of processor events already applied to the ledger."""

    __tablename__ = "webhook_events"

    id: Mapped[int] = mapped_column(primary_key=True)
    event_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    event_type: Mapped[str] = mapped_column(String(80), nullable=False)
    outcome: Mapped[str] = mapped_column(String(40), nullable=False)
