from enum import Enum


class Role(str, Enum):
    CLIENT = "client"
    READER = "reader"
    ADMIN = "admin"


class ChannelType(str, Enum):
    CHAT = "chat"
    VOICE = "voice"
    VIDEO = "video"


class SessionStatus(str, Enum):
    CREATED = "created"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class TransactionType(str, Enum):
    TOPUP = "topup"
    CHARGE = "charge"
    EARNING = "earning"
    PAYOUT = "payout"
    REFUND = "refund"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class PayoutAccountStatus(str, Enum):
    UNLINKED = "unlinked"
    PENDING = "pending"
    ACTIVE = "active"
    DISABLED = "disabled"


class PayoutRunStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"


OPEN_SESSION_STATUSES = frozenset({SessionStatus.CREATED, SessionStatus.ACTIVE})
TERMINAL_SESSION_STATUSES = frozenset({SessionStatus.COMPLETED, SessionStatus.FAILED, SessionStatus.CANCELLED})
UNSETTLED_TRANSACTION_STATUSES = (TransactionStatus.PENDING, TransactionStatus.PROCESSING)
