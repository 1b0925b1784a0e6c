from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from reading_billing.db.models import ClientBalance, ReaderProfile, ReadingSession, Transaction, User
from reading_billing.db.models.enums import ChannelType, Role, SessionStatus, TransactionStatus, TransactionType


def test_basic_relations_and_minimum_domain_defaults(db_session: Session) -> None:
    customer = User(id=101, email="relations-client@test.local", role=Role.CLIENT)
    reader = User(id=102, email="relations-reader@test.local", role=Role.READER)
    db_session.add_all([customer, reader])
    db_session.flush()

    balance = ClientBalance(user_id=customer.id)
    profile = ReaderProfile(user_id=reader.id, display_name="Relations", chat_rate=Decimal("2.00"))
    reading = ReadingSession(
        client_id=customer.id,
        reader_id=reader.id,
        channel_type=ChannelType.CHAT,
        status=SessionStatus.ACTIVE,
        rate_per_minute=Decimal("2.00"),
        channel_name="reading_101_102_1",
        requested_at=datetime.now(UTC),
    )
    db_session.add_all([balance, profile, reading])
    db_session.flush()

    charge = Transaction(
        user_id=customer.id,
        type=TransactionType.CHARGE,
        status=TransactionStatus.COMPLETED,
        amount=Decimal("4.00"),
        session_id=reading.id,
    )
    db_session.add(charge)
    db_session.commit()
    for row in (balance, profile, charge):
        db_session.refresh(row)

    assert balance.balance == Decimal("0.00")
    assert balance.pending_charges == Decimal("0.00")
    assert profile.is_online is False
    assert profile.is_available is False
    assert profile.payout_account_status.value == "unlinked"
    assert charge.currency == "usd"


def test_balance_check_constraint_rejects_negative_balance(db_session: Session) -> None:
    customer = User(id=201, email="negative@test.local", role=Role.CLIENT)
    db_session.add(customer)
    db_session.flush()
    db_session.add(ClientBalance(user_id=customer.id, balance=Decimal("-0.01")))

    with pytest.raises(IntegrityError):
        db_session.flush()
    db_session.rollback()
