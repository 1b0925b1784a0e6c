from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, JSON, Numeric, String
from sqlalchemy import Enum as SqlEnum
from sqlalchemy.orm import Mapped, mapped_column

from reading_billing.db.models.enums import (
    ChannelType,
    PayoutAccountStatus,
    TransactionStatus,
    TransactionType,
)
from reading_billing.db.models.mixins import TimestampMixin
from reading_billing.db.session import Base

MONEY = Numeric(12, 2)


class ClientBalance(TimestampMixin, Base):
    __tablename__ = "client_balances"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    balance: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"), server_default="0")
    pending_charges: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"), server_default="0")
    total_spent: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"), server_default="0")
    processor_customer_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_client_balances_balance_non_negative"),
        CheckConstraint("pending_charges >= 0", name="ck_client_balances_pending_non_negative"),
    )


class ReaderProfile(TimestampMixin, Base):
    __tablename__ = "reader_profiles"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(120), nullable=False)
    chat_rate: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    voice_rate: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    video_rate: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    is_online: Mapped[bool] = mapped_column(nullable=False, default=False, server_default="false")
    is_available: Mapped[bool] = mapped_column(nullable=False, default=False, server_default="false")
    rating: Mapped[Decimal] = mapped_column(Numeric(3, 2), nullable=False, default=Decimal("0"), server_default="0")
    total_reviews: Mapped[int] = mapped_column(nullable=False, default=0, server_default="0")
    total_minutes: Mapped[int] = mapped_column(nullable=False, default=0, server_default="0")
    pending_earnings: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"), server_default="0")
    total_earnings: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"), server_default="0")
    last_payout_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    payout_account_id: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)
    payout_account_status: Mapped[PayoutAccountStatus] = mapped_column(
        SqlEnum(PayoutAccountStatus, name="payout_account_status_enum", native_enum=False),
        nullable=False,
        default=PayoutAccountStatus.UNLINKED,
        server_default=PayoutAccountStatus.UNLINKED.value,
    )

    __table_args__ = (
        CheckConstraint("NOT is_available OR is_online", name="ck_reader_profiles_available_implies_online"),
        CheckConstraint("pending_earnings >= 0", name="ck_reader_profiles_pending_non_negative"),
        Index("ix_reader_profiles_payout_scan", "payout_account_status", "pending_earnings"),
    )

    def rate_for(self, channel_type: ChannelType) -> Decimal | None:
        return {
            ChannelType.CHAT: self.chat_rate,
            ChannelType.VOICE: self.voice_rate,
            ChannelType.VIDEO: self.video_rate,
        }[channel_type]


class Transaction(TimestampMixin, Base):
    """Append-only ledger entry. Only ``status`` moves after insert."""

    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        SqlEnum(TransactionType, name="transaction_type_enum", native_enum=False),
        nullable=False,
    )
    status: Mapped[TransactionStatus] = mapped_column(
        SqlEnum(TransactionStatus, name="transaction_status_enum", native_enum=False),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    platform_fee: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    currency: Mapped[str] = mapped_column(String(12), nullable=False, default="usd", server_default="usd")
    session_id: Mapped[int | None] = mapped_column(
        ForeignKey("reading_sessions.id", ondelete="RESTRICT"),
        nullable=True,
    )
    gift_id: Mapped[int | None] = mapped_column(ForeignKey("virtual_gifts.id", ondelete="RESTRICT"), nullable=True)
    payout_run_id: Mapped[int | None] = mapped_column(ForeignKey("payout_runs.id", ondelete="RESTRICT"), nullable=True)
    refund_of_id: Mapped[int | None] = mapped_column(ForeignKey("transactions.id", ondelete="RESTRICT"), nullable=True)
    external_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    details: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON, nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)

    __table_args__ = (
        Index("ix_transactions_user_id", "user_id"),
        Index("ix_transactions_session_id", "session_id"),
        Index("ix_transactions_external_reference", "external_reference"),
        Index("ix_transactions_refund_of_id", "refund_of_id"),
        Index("ix_transactions_payout_run_id", "payout_run_id"),
    )
