"""Fee computation from a channel's fee schedule.

``total = amount + clamp(flat + round_half_up(amount * percent / 100),
minimum_fee, maximum_fee)`` where a zero or missing ``maximum_fee`` means
no upper clamp.  Everything is whole currency units; the percentage part
is rounded half-up *before* it is added to the flat part.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

from app.core.exceptions import InvalidAmount, InvalidFeeSchedule

FEE_BEARERS = ("merchant", "customer")


def to_decimal(value: Any, field_name: str) -> Decimal:
    try:
        return Decimal(str(value if value is not None else 0))
    except (InvalidOperation, ValueError) as exc:
        raise InvalidFeeSchedule(f"{field_name} is not a number: {value!r}") from exc


def round_half_up(value: Decimal) -> int:
    """Round to a whole currency unit, .5 going away from zero."""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class FeeSchedule:
    """Flat + percentage component charged to one party."""

    flat: int = 0
    percent: Decimal = Decimal("0")


@dataclass(frozen=True)
class ChannelFees:
    """All fee parameters of one payment channel."""

    code: str
    fee_merchant: FeeSchedule
    fee_customer: FeeSchedule
    minimum_fee: int = 0
    maximum_fee: Optional[int] = None

    @classmethod
    def from_channel(cls, channel: Any) -> ChannelFees:
        """Build from a ``PaymentChannel`` row (or anything shaped like one)."""
        return cls(
            code=channel.code,
            fee_merchant=FeeSchedule(
                flat=int(to_decimal(channel.fee_merchant_flat, "fee_merchant_flat")),
                percent=to_decimal(channel.fee_merchant_percent, "fee_merchant_percent"),
            ),
            fee_customer=FeeSchedule(
                flat=int(to_decimal(channel.fee_customer_flat, "fee_customer_flat")),
                percent=to_decimal(channel.fee_customer_percent, "fee_customer_percent"),
            ),
            minimum_fee=int(to_decimal(channel.minimum_fee, "minimum_fee")),
            maximum_fee=(
                int(to_decimal(channel.maximum_fee, "maximum_fee"))
                if channel.maximum_fee
                else None
            ),
        )

    def schedule_for(self, bearer: str) -> FeeSchedule:
        if bearer == "merchant":
            return self.fee_merchant
        if bearer == "customer":
            return self.fee_customer
        raise ValueError(f"Unknown fee bearer {bearer!r}; expected one of {FEE_BEARERS}")


@dataclass(frozen=True)
class FeeBreakdown:
    amount: int
    fee: int
    total: int


def validate_channel_fees(fees: ChannelFees) -> None:
    """Reject schedules that cannot produce a sane fee.

    Raises:
        InvalidFeeSchedule: naming the channel and the offending field.
    """
    for bearer in FEE_BEARERS:
        schedule = fees.schedule_for(bearer)
        if schedule.flat < 0:
            raise InvalidFeeSchedule(
                f"Channel {fees.code}: negative {bearer} flat fee ({schedule.flat})"
            )
        if schedule.percent < 0 or schedule.percent >= 100:
            raise InvalidFeeSchedule(
                f"Channel {fees.code}: {bearer} percent out of range "
                f"({schedule.percent})"
            )
    if fees.minimum_fee < 0:
        raise InvalidFeeSchedule(
            f"Channel {fees.code}: negative minimum_fee ({fees.minimum_fee})"
        )
    if fees.maximum_fee is not None:
        if fees.maximum_fee < 0:
            raise InvalidFeeSchedule(
                f"Channel {fees.code}: negative maximum_fee ({fees.maximum_fee})"
            )
        if fees.maximum_fee < fees.minimum_fee:
            raise InvalidFeeSchedule(
                f"Channel {fees.code}: maximum_fee {fees.maximum_fee} is below "
                f"minimum_fee {fees.minimum_fee}"
            )


def _check_amount(base_amount: int) -> int:
    if isinstance(base_amount, bool) or int(base_amount) != base_amount:
        raise InvalidAmount(f"Amount must be a whole number, got {base_amount!r}")
    if base_amount <= 0:
        raise InvalidAmount(f"Amount must be positive, got {base_amount}")
    return int(base_amount)


def compute_fee(base_amount: int, fees: ChannelFees, bearer: str = "merchant") -> int:
    """Fee charged on *base_amount* for the given channel.

    Args:
        base_amount: Positive whole amount before fees.
        fees: The channel's fee parameters.
        bearer: Which schedule to apply, ``merchant`` (default) or ``customer``.

    Returns:
        The clamped fee in whole currency units.
    """
    amount = _check_amount(base_amount)
    schedule = fees.schedule_for(bearer)

    percent_fee = round_half_up(Decimal(amount) * schedule.percent / Decimal(100))
    fee = schedule.flat + percent_fee

    if fee < fees.minimum_fee:
        fee = fees.minimum_fee
    if fees.maximum_fee and fee > fees.maximum_fee:
        fee = fees.maximum_fee
    return fee


def total_payable(base_amount: int, fees: ChannelFees, bearer: str = "merchant") -> int:
    """``base_amount`` plus its channel fee."""
    return int(base_amount) + compute_fee(base_amount, fees, bearer)


def quote(base_amount: int, fees: ChannelFees, bearer: str = "merchant") -> FeeBreakdown:
    fee = compute_fee(base_amount, fees, bearer)
    return FeeBreakdown(amount=int(base_amount), fee=fee, total=int(base_amount) + fee)
