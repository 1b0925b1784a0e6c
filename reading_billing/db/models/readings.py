from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Index, SmallInteger, String, Text
from sqlalchemy import Enum as SqlEnum
from sqlalchemy.orm import Mapped, mapped_column

from reading_billing.db.models.enums import ChannelType, SessionStatus
from reading_billing.db.models.ledger import MONEY
from reading_billing.db.models.mixins import TimestampMixin
from reading_billing.db.session import Base


class ReadingSession(TimestampMixin, Base):
    __tablename__ = "reading_sessions"

    id: Mapped[int] = mapped_column(primary_key=True)
    client_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    reader_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    channel_type: Mapped[ChannelType] = mapped_column(
        SqlEnum(ChannelType, name="channel_type_enum", native_enum=False),
        nullable=False,
    )
    status: Mapped[SessionStatus] = mapped_column(
        SqlEnum(SessionStatus, name="session_status_enum", native_enum=False),
        nullable=False,
    )
    rate_per_minute: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    reserved_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"), server_default="0")
    channel_name: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)
    requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_seconds: Mapped[int | None] = mapped_column(nullable=True)
    total_cost: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    platform_fee: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    client_rating: Mapped[int | None] = mapped_column(SmallInteger, nullable=True)
    client_review: Mapped[str | None] = mapped_column(Text, nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)

    __table_args__ = (
        Index("ix_reading_sessions_client_id", "client_id"),
        Index("ix_reading_sessions_reader_id", "reader_id"),
        Index("ix_reading_sessions_status_requested_at", "status", "requested_at"),
    )

    def has_participant(self, user_id: int) -> bool:
        return user_id in {self.client_id, self.reader_id}
