"""ORM models for the reading billing service."""

from reading_billing.db.models.auth import User
from reading_billing.db.models.enums import (
    ChannelType,
    PayoutAccountStatus,
    PayoutRunStatus,
    Role,
    SessionStatus,
    TransactionStatus,
    TransactionType,
)
from reading_billing.db.models.gifts import VirtualGift
from reading_billing.db.models.ledger import ClientBalance, ReaderProfile, Transaction
from reading_billing.db.models.payouts import PayoutRun, WebhookEvent
from reading_billing.db.models.platform import PlatformSettings
from reading_billing.db.models.readings import ReadingSession

__all__ = [
    "ChannelType",
    "ClientBalance",
    "PayoutAccountStatus",
    "PayoutRun",
    "PayoutRunStatus",
    "PlatformSettings",
    "ReaderProfile",
    "ReadingSession",
    "Role",
    "SessionStatus",
    "Transaction",
    "TransactionStatus",
    "TransactionType",
    "User",
    "VirtualGift",
    "WebhookEvent",
]
