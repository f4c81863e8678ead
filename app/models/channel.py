"""Payment channel model: slow-changing reference data synced from the gateway."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import BigInteger, Boolean, DateTime, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class PaymentChannel(Base):
    """A settlement method offered by the gateway (virtual account, QRIS, ...).

    ``is_active`` mirrors the gateway's own flag; ``is_enabled`` is the local
    admin switch.  Only channels with both set can be used at checkout.
    """

    __tablename__ = "payment_channels"

    code: Mapped[str] = mapped_column(
        String(30),
        primary_key=True,
    )
    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    group_name: Mapped[Optional[str]] = mapped_column(String(100))
    fee_merchant_flat: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )
    fee_merchant_percent: Mapped[Decimal] = mapped_column(
        Numeric(6, 3),
        nullable=False,
        default=0,
    )
    fee_customer_flat: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )
    fee_customer_percent: Mapped[Decimal] = mapped_column(
        Numeric(6, 3),
        nullable=False,
        default=0,
    )
    minimum_fee: Mapped[Optional[int]] = mapped_column(
        BigInteger,
        nullable=True,
    )
    maximum_fee: Mapped[Optional[int]] = mapped_column(
        BigInteger,
        nullable=True,
        comment="0 or NULL means no upper clamp",
    )
    minimum_amount: Mapped[Optional[int]] = mapped_column(BigInteger)
    maximum_amount: Mapped[Optional[int]] = mapped_column(BigInteger)
    icon_url: Mapped[Optional[str]] = mapped_column(String(512))
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )
    is_enabled: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )
    display_order: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    def __repr__(self) -> str:
        return (
            f"<PaymentChannel(code={self.code!r}, active={self.is_active}, "
            f"enabled={self.is_enabled})>"
        )
