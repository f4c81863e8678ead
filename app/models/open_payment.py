"""Open payment code and the payments captured against it."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, DateTime, ForeignKey, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base


class OpenPaymentCode(Base):
    """A reusable pay code that accepts repeated transfers of any amount.

    This is a container, not a payment: each accepted transfer becomes a
    ``CapturedPayment`` row.
    """

    __tablename__ = "open_payment_codes"

    id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        comment="Local merchant reference (OP-...)",
    )
    uuid: Mapped[Optional[str]] = mapped_column(
        String(64),
        unique=True,
        nullable=True,
        comment="Gateway-assigned id, NULL until the gateway accepts",
    )
    user_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        index=True,
    )
    channel_code: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
    )
    customer_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    pay_code: Mapped[Optional[str]] = mapped_column(String(64))
    qr_string: Mapped[Optional[str]] = mapped_column(Text)
    qr_url: Mapped[Optional[str]] = mapped_column(String(512))
    status: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default="active",
        comment="active | expired",
    )
    expired_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    # -- Relationships --
    captures: Mapped[list[CapturedPayment]] = relationship(
        "CapturedPayment",
        back_populates="open_payment",
        lazy="select",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return (
            f"<OpenPaymentCode(id={self.id!r}, uuid={self.uuid!r}, "
            f"status={self.status!r})>"
        )


class CapturedPayment(Base):
    """One transfer received on an open payment code.

    ``reference`` is unique: a replayed PAID callback for the same gateway
    reference cannot insert a second row.
    """

    __tablename__ = "captured_payments"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )
    open_payment_id: Mapped[str] = mapped_column(
        ForeignKey("open_payment_codes.id"),
        nullable=False,
        index=True,
    )
    reference: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
    )
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    fee_merchant: Mapped[int] = mapped_column(BigInteger, default=0)
    fee_customer: Mapped[int] = mapped_column(BigInteger, default=0)
    total_fee: Mapped[int] = mapped_column(BigInteger, default=0)
    amount_received: Mapped[int] = mapped_column(BigInteger, nullable=False)
    paid_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
    )

    # -- Relationships --
    open_payment: Mapped[OpenPaymentCode] = relationship(
        "OpenPaymentCode",
        back_populates="captures",
        lazy="select",
    )

    def __repr__(self) -> str:
        return (
            f"<CapturedPayment(reference={self.reference!r}, "
            f"amount={self.amount}, open_payment_id={self.open_payment_id!r})>"
        )
