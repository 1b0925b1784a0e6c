"""initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-18 00:00:00.000000
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001_initial_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


MONEY = sa.Numeric(precision=12, scale=2)

role_enum = sa.Enum("client", "reader", "admin", name="role_enum", native_enum=False, create_constraint=True)
channel_type_enum = sa.Enum(
    "chat",
    "voice",
    "video",
    name="channel_type_enum",
    native_enum=False,
    create_constraint=True,
)
session_status_enum = sa.Enum(
    "created",
    "active",
    "completed",
    "failed",
    "cancelled",
    name="session_status_enum",
    native_enum=False,
    create_constraint=True,
)
transaction_type_enum = sa.Enum(
    "topup",
    "charge",
    "earning",
    "payout",
    "refund",
    name="transaction_type_enum",
    native_enum=False,
    create_constraint=True,
)
transaction_status_enum = sa.Enum(
    "pending",
    "processing",
    "completed",
    "failed",
    "refunded",
    name="transaction_status_enum",
    native_enum=False,
    create_constraint=True,
)
payout_account_status_enum = sa.Enum(
    "unlinked",
    "pending",
    "active",
    "disabled",
    name="payout_account_status_enum",
    native_enum=False,
    create_constraint=True,
)
payout_run_status_enum = sa.Enum(
    "running",
    "completed",
    name="payout_run_status_enum",
    native_enum=False,
    create_constraint=True,
)


def _timestamp_columns() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("role", role_enum, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_index("ix_users_role", "users", ["role"], unique=False)

    op.create_table(
        "platform_settings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("platform_fee_bps", sa.Integer(), nullable=False, server_default="3000"),
        sa.Column("minimum_payout", MONEY, nullable=False, server_default="15.00"),
        sa.Column("min_prepaid_minutes", sa.Integer(), nullable=False, server_default="2"),
        sa.Column("session_start_timeout_seconds", sa.Integer(), nullable=False, server_default="120"),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "virtual_gifts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(length=40), nullable=False),
        sa.Column("name", sa.String(length=80), nullable=False),
        sa.Column("price", MONEY, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code"),
    )

    op.create_table(
        "client_balances",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("balance", MONEY, nullable=False, server_default="0"),
        sa.Column("pending_charges", MONEY, nullable=False, server_default="0"),
        sa.Column("total_spent", MONEY, nullable=False, server_default="0"),
        sa.Column("processor_customer_id", sa.String(length=255), nullable=True),
        *_timestamp_columns(),
        sa.CheckConstraint("balance >= 0", name="ck_client_balances_balance_non_negative"),
        sa.CheckConstraint("pending_charges >= 0", name="ck_client_balances_pending_non_negative"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id"),
    )

    op.create_table(
        "reader_profiles",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("display_name", sa.String(length=120), nullable=False),
        sa.Column("chat_rate", MONEY, nullable=True),
        sa.Column("voice_rate", MONEY, nullable=True),
        sa.Column("video_rate", MONEY, nullable=True),
        sa.Column("is_online", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_available", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("rating", sa.Numeric(precision=3, scale=2), nullable=False, server_default="0"),
        sa.Column("total_reviews", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("pending_earnings", MONEY, nullable=False, server_default="0"),
        sa.Column("total_earnings", MONEY, nullable=False, server_default="0"),
        sa.Column("last_payout_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payout_account_id", sa.String(length=255), nullable=True),
        sa.Column("payout_account_status", payout_account_status_enum, nullable=False, server_default="unlinked"),
        *_timestamp_columns(),
        sa.CheckConstraint("NOT is_available OR is_online", name="ck_reader_profiles_available_implies_online"),
        sa.CheckConstraint("pending_earnings >= 0", name="ck_reader_profiles_pending_non_negative"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id"),
        sa.UniqueConstraint("payout_account_id"),
    )
    op.create_index(
        "ix_reader_profiles_payout_scan",
        "reader_profiles",
        ["payout_account_status", "pending_earnings"],
        unique=False,
    )

    op.create_table(
        "payout_runs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("run_key", sa.String(length=64), nullable=False),
        sa.Column("status", payout_run_status_enum, nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("succeeded", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("failed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("skipped", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_amount", MONEY, nullable=False, server_default="0"),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("run_key"),
    )

    op.create_table(
        "webhook_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("event_id", sa.String(length=255), nullable=False),
        sa.Column("event_type", sa.String(length=80), nullable=False),
        sa.Column("outcome", sa.String(length=40), nullable=False),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("event_id"),
    )

    op.create_table(
        "reading_sessions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("client_id", sa.Integer(), nullable=False),
        sa.Column("reader_id", sa.Integer(), nullable=False),
        sa.Column("channel_type", channel_type_enum, nullable=False),
        sa.Column("status", session_status_enum, nullable=False),
        sa.Column("rate_per_minute", MONEY, nullable=False),
        sa.Column("reserved_amount", MONEY, nullable=False, server_default="0"),
        sa.Column("channel_name", sa.String(length=120), nullable=False),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_seconds", sa.Integer(), nullable=True),
        sa.Column("total_cost", MONEY, nullable=True),
        sa.Column("platform_fee", MONEY, nullable=True),
        sa.Column("client_rating", sa.SmallInteger(), nullable=True),
        sa.Column("client_review", sa.Text(), nullable=True),
        sa.Column("failure_reason", sa.String(length=255), nullable=True),
        *_timestamp_columns(),
        sa.ForeignKeyConstraint(["client_id"], ["users.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["reader_id"], ["users.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("channel_name"),
    )
    op.create_index("ix_reading_sessions_client_id", "reading_sessions", ["client_id"], unique=False)
    op.create_index("ix_reading_sessions_reader_id", "reading_sessions", ["reader_id"], unique=False)
    op.create_index(
        "ix_reading_sessions_status_requested_at",
        "reading_sessions",
        ["status", "requested_at"],
        unique=False,
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("type", transaction_type_enum, nullable=False),
        sa.Column("status", transaction_status_enum, nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("platform_fee", MONEY, nullable=True),
        sa.Column("currency", sa.String(length=12), nullable=False, server_default="usd"),
        sa.Column("session_id", sa.Integer(), nullable=True),
        sa.Column("gift_id", sa.Integer(), nullable=True),
        sa.Column("payout_run_id", sa.Integer(), nullable=True),
        sa.Column("refund_of_id", sa.Integer(), nullable=True),
        sa.Column("external_reference", sa.String(length=255), nullable=True),
        sa.Column("description", sa.String(length=255), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("failure_reason", sa.String(length=255), nullable=True),
        *_timestamp_columns(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["session_id"], ["reading_sessions.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["gift_id"], ["virtual_gifts.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["payout_run_id"], ["payout_runs.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["refund_of_id"], ["transactions.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_transactions_user_id", "transactions", ["user_id"], unique=False)
    op.create_index("ix_transactions_session_id", "transactions", ["session_id"], unique=False)
    op.create_index("ix_transactions_external_reference", "transactions", ["external_reference"], unique=False)
    op.create_index("ix_transactions_refund_of_id", "transactions", ["refund_of_id"], unique=False)
    op.create_index("ix_transactions_payout_run_id", "transactions", ["payout_run_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_transactions_payout_run_id", table_name="transactions")
    op.drop_index("ix_transactions_refund_of_id", table_name="transactions")
    op.drop_index("ix_transactions_external_reference", table_name="transactions")
    op.drop_index("ix_transactions_session_id", table_name="transactions")
    op.drop_index("ix_transactions_user_id", table_name="transactions")
    op.drop_table("transactions")

    op.drop_index("ix_reading_sessions_status_requested_at", table_name="reading_sessions")
    op.drop_index("ix_reading_sessions_reader_id", table_name="reading_sessions")
    op.drop_index("ix_reading_sessions_client_id", table_name="reading_sessions")
    op.drop_table("reading_sessions")

    op.drop_table("webhook_events")
    op.drop_table("payout_runs")

    op.drop_index("ix_reader_profiles_payout_scan", table_name="reader_profiles")
    op.drop_table("reader_profiles")
    op.drop_table("client_balances")
    op.drop_table("virtual_gifts")
    op.drop_table("platform_settings")

    op.drop_index("ix_users_role", table_name="users")
    op.drop_table("users")
