"""Rate and cost arithmetic for metered sessions.

Everything here is pure: no database access and no failure modes. Amounts are
``Decimal`` values quantized to cents.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from reading_billing.db.models.platform import DEFAULT_PLATFORM_FEE_BPS

CENTS = Decimal("0.01")
SECONDS_PER_MINUTE = 60
BPS_DENOMINATOR = Decimal(10_000)


@dataclass(frozen=True)
class AmountSplit:
    amount: Decimal
    platform_fee: Decimal
    payee_share: Decimal


@dataclass(frozen=True)
class SessionCost:
    duration_seconds: int
    billable_minutes: int
    rate_per_minute: Decimal
    amount: Decimal
    platform_fee: Decimal
    payee_share: Decimal


def to_money(value: Decimal | int | str) -> Decimal:
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def billable_minutes(duration_seconds: int) -> int:
    """Whole minutes to bill; any started minute counts as a full one."""

    if duration_seconds <= 0:
        return 0
    return -(-duration_seconds // SECONDS_PER_MINUTE)


def split_amount(amount: Decimal, *, fee_bps: int = DEFAULT_PLATFORM_FEE_BPS) -> AmountSplit:
    amount = to_money(amount)
    platform_fee = (amount * Decimal(fee_bps) / BPS_DENOMINATOR).quantize(CENTS, rounding=ROUND_HALF_UP)
    return AmountSplit(amount=amount, platform_fee=platform_fee, payee_share=amount - platform_fee)


def calculate_session_cost(
    duration_seconds: int,
    rate_per_minute: Decimal,
    *,
    fee_bps: int = DEFAULT_PLATFORM_FEE_BPS,
) -> SessionCost:
    duration_seconds = max(0, int(duration_seconds))
    minutes = billable_minutes(duration_seconds)
    split = split_amount(Decimal(minutes) * rate_per_minute, fee_bps=fee_bps)
    return SessionCost(
        duration_seconds=duration_seconds,
        billable_minutes=minutes,
        rate_per_minute=to_money(rate_per_minute),
        amount=split.amount,
        platform_fee=split.platform_fee,
        payee_share=split.payee_share,
    )


def to_cents(amount: Decimal) -> int:
    return int((to_money(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    return to_money(Decimal(cents) / 100)
