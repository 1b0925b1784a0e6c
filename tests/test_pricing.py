from __future__ import annotations

from decimal import Decimal

import pytest

from reading_billing.services.pricing import (
    billable_minutes,
    calculate_session_cost,
    from_cents,
    split_amount,
    to_cents,
)


@pytest.mark.parametrize(
    ("duration_seconds", "expected_minutes"),
    [(0, 0), (-5, 0), (1, 1), (60, 1), (61, 2), (150, 3), (3600, 60)],
)
def test_billable_minutes_rounds_started_minutes_up(duration_seconds: int, expected_minutes: int) -> None:
    assert billable_minutes(duration_seconds) == expected_minutes


def test_session_cost_bills_a_partial_minute_as_a_full_one() -> None:
    cost = calculate_session_cost(61, Decimal("2.00"))

    assert cost.billable_minutes == 2
    assert cost.amount == Decimal("4.00")


def test_session_cost_splits_platform_fee_and_reader_share() -> None:
    cost = calculate_session_cost(150, Decimal("2.00"), fee_bps=3000)

    assert cost.billable_minutes == 3
    assert cost.amount == Decimal("6.00")
    assert cost.platform_fee == Decimal("1.80")
    assert cost.payee_share == Decimal("4.20")
    assert cost.platform_fee + cost.payee_share == cost.amount


def test_zero_length_session_costs_nothing() -> None:
    cost = calculate_session_cost(0, Decimal("3.99"))

    assert cost.billable_minutes == 0
    assert cost.amount == Decimal("0.00")
    assert cost.platform_fee == Decimal("0.00")
    assert cost.payee_share == Decimal("0.00")


def test_split_rounds_fee_half_up_and_keeps_the_remainder_for_the_reader() -> None:
    split = split_amount(Decimal("0.05"), fee_bps=3000)

    # 0.015 rounds up to 0.02
    assert split.platform_fee == Decimal("0.02")
    assert split.payee_share == Decimal("0.03")


def test_cents_conversion() -> None:
    assert to_cents(Decimal("12.34")) == 1234
    assert from_cents(2500) == Decimal("25.00")
