"""Tests for fee computation and fee-schedule validation."""

from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace

import pytest

from app.core.exceptions import InvalidAmount, InvalidFeeSchedule
from app.services.payment.fees import (
    ChannelFees,
    FeeSchedule,
    compute_fee,
    quote,
    round_half_up,
    total_payable,
    validate_channel_fees,
)


def _make_fees(
    flat: int = 0,
    percent: str = "0",
    minimum_fee: int = 0,
    maximum_fee: int | None = None,
    customer_flat: int = 0,
    customer_percent: str = "0",
) -> ChannelFees:
    return ChannelFees(
        code="TEST",
        fee_merchant=FeeSchedule(flat=flat, percent=Decimal(percent)),
        fee_customer=FeeSchedule(flat=customer_flat, percent=Decimal(customer_percent)),
        minimum_fee=minimum_fee,
        maximum_fee=maximum_fee,
    )


# ── compute_fee / total_payable ──────────────────────────────────────


class TestComputeFee:
    def test_flat_plus_percentage(self):
        """100000 at 4000 + 1.5% -> fee 5500, total 105500."""
        fees = _make_fees(flat=4000, percent="1.5")
        assert compute_fee(100000, fees) == 5500
        assert total_payable(100000, fees) == 105500

    def test_minimum_fee_applies(self):
        """Computed fee below minimum_fee is raised to it."""
        fees = _make_fees(flat=100, minimum_fee=1000)
        assert total_payable(10000, fees) == 11000

    def test_maximum_fee_applies(self):
        """5% of 200000 = 10000, clamped down to 5000."""
        fees = _make_fees(percent="5", maximum_fee=5000)
        assert total_payable(200000, fees) == 205000

    def test_zero_maximum_means_no_clamp(self):
        fees = _make_fees(percent="5", maximum_fee=0)
        assert compute_fee(200000, fees) == 10000

    def test_zero_fees(self):
        fees = _make_fees()
        assert total_payable(50000, fees) == 50000

    @pytest.mark.parametrize(
        "amount, percent, expected",
        [
            (100, "0.5", 1),  # 0.5 rounds up
            (300, "0.5", 2),  # 1.5 rounds up
            (1, "49", 0),  # 0.49 rounds down
            (1, "50", 1),  # 0.5 rounds up
            (10001, "0.7", 70),  # 70.007
        ],
    )
    def test_percentage_rounds_half_up(self, amount, percent, expected):
        assert compute_fee(amount, _make_fees(percent=percent)) == expected

    def test_percentage_rounded_before_flat_added(self):
        """flat + round(pct), not round(flat + pct)."""
        fees = _make_fees(flat=1, percent="0.5")
        # 100 * 0.5% = 0.5 -> 1, plus flat 1
        assert compute_fee(100, fees) == 2

    def test_customer_schedule_when_requested(self):
        fees = _make_fees(flat=4000, customer_flat=2500, customer_percent="1")
        assert compute_fee(100000, fees, bearer="customer") == 3500
        assert compute_fee(100000, fees) == 4000

    def test_unknown_bearer_rejected(self):
        with pytest.raises(ValueError):
            compute_fee(100000, _make_fees(), bearer="platform")

    @pytest.mark.parametrize("amount", [0, -1, -100000])
    def test_non_positive_amount_rejected(self, amount):
        with pytest.raises(InvalidAmount):
            compute_fee(amount, _make_fees())

    def test_fractional_amount_rejected(self):
        with pytest.raises(InvalidAmount):
            compute_fee(100.5, _make_fees())

    def test_total_is_deterministic(self):
        fees = _make_fees(flat=4000, percent="1.5", minimum_fee=1000, maximum_fee=9000)
        results = {total_payable(123457, fees) for _ in range(20)}
        assert len(results) == 1

    def test_quote_breakdown(self):
        breakdown = quote(100000, _make_fees(flat=4000, percent="1.5"))
        assert breakdown.amount == 100000
        assert breakdown.fee == 5500
        assert breakdown.total == 105500


def test_round_half_up_helper():
    assert round_half_up(Decimal("2.5")) == 3
    assert round_half_up(Decimal("2.4999")) == 2


# ── ChannelFees.from_channel ─────────────────────────────────────────


class TestFromChannel:
    def test_builds_from_channel_columns(self):
        row = SimpleNamespace(
            code="BRIVA",
            fee_merchant_flat=4000,
            fee_merchant_percent=Decimal("1.500"),
            fee_customer_flat=0,
            fee_customer_percent=Decimal("0"),
            minimum_fee=None,
            maximum_fee=0,
        )
        fees = ChannelFees.from_channel(row)
        assert fees.fee_merchant == FeeSchedule(flat=4000, percent=Decimal("1.500"))
        assert fees.minimum_fee == 0
        assert fees.maximum_fee is None

    def test_non_numeric_percent_is_invalid_schedule(self):
        row = SimpleNamespace(
            code="BAD",
            fee_merchant_flat=0,
            fee_merchant_percent="lots",
            fee_customer_flat=0,
            fee_customer_percent=0,
            minimum_fee=0,
            maximum_fee=None,
        )
        with pytest.raises(InvalidFeeSchedule):
            ChannelFees.from_channel(row)


# ── validate_channel_fees ────────────────────────────────────────────


class TestValidateChannelFees:
    def test_sane_schedule_passes(self):
        validate_channel_fees(_make_fees(flat=4000, percent="1.5", minimum_fee=1000))

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"flat": -1},
            {"percent": "-0.1"},
            {"percent": "100"},
            {"customer_percent": "150"},
            {"minimum_fee": -5},
            {"maximum_fee": -5},
            {"minimum_fee": 5000, "maximum_fee": 1000},
        ],
    )
    def test_malformed_schedules_rejected(self, kwargs):
        with pytest.raises(InvalidFeeSchedule) as exc_info:
            validate_channel_fees(_make_fees(**kwargs))
        assert "TEST" in exc_info.value.message
