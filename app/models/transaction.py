"""Transaction model: the local ledger of closed-payment attempts."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import BigInteger, DateTime, Index, JSON, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class Transaction(Base):
    """A single closed payment requested through the gateway.

    The primary key doubles as the ``merchant_ref`` sent to the gateway, so
    it is the idempotency key that ties callbacks and status queries back
    to this row.  Amounts are whole currency units.
    """

    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        comment="Local merchant reference (TXN-...)",
    )
    reference: Mapped[Optional[str]] = mapped_column(
        String(64),
        unique=True,
        nullable=True,
        comment="Gateway-assigned reference, NULL until the gateway accepts",
    )
    kind: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default="closed",
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
    amount: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )
    fee: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )
    total_amount: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )
    amount_received: Mapped[Optional[int]] = mapped_column(
        BigInteger,
        nullable=True,
    )
    fee_merchant: Mapped[Optional[int]] = mapped_column(
        BigInteger,
        nullable=True,
    )
    fee_customer: Mapped[Optional[int]] = mapped_column(
        BigInteger,
        nullable=True,
    )
    status: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default="pending",
        comment="pending | paid | failed | expired",
    )
    failure_reason: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    customer_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    customer_email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    customer_phone: Mapped[Optional[str]] = mapped_column(
        String(32),
        nullable=True,
    )
    order_items: Mapped[Optional[list[dict[str, Any]]]] = mapped_column(
        JSON,
        nullable=True,
    )
    pay_code: Mapped[Optional[str]] = mapped_column(String(64))
    pay_url: Mapped[Optional[str]] = mapped_column(String(512))
    checkout_url: Mapped[Optional[str]] = mapped_column(String(512))
    qr_string: Mapped[Optional[str]] = mapped_column(Text)
    qr_url: Mapped[Optional[str]] = mapped_column(String(512))
    expired_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
    )
    paid_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
    )

    __table_args__ = (
        Index("ix_transactions_status_created", "status", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Transaction(id={self.id!r}, reference={self.reference!r}, "
            f"status={self.status!r}, total_amount={self.total_amount})>"
        )
