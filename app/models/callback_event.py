"""Audit trail of verified gateway callbacks."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import Boolean, DateTime, JSON, String, func
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class CallbackEvent(Base):
    """One verified callback and what the handler did with it.

    Callbacks that fail signature verification are never stored here.
    A ``not_found`` row is how a gateway success for a rolled-back local
    transaction shows up.
    """

    __tablename__ = "callback_events"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )
    reference: Mapped[Optional[str]] = mapped_column(
        String(64),
        index=True,
    )
    merchant_ref: Mapped[Optional[str]] = mapped_column(
        String(64),
        index=True,
    )
    gateway_status: Mapped[Optional[str]] = mapped_column(String(20))
    is_closed_payment: Mapped[bool] = mapped_column(Boolean, default=True)
    outcome: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="applied | already_applied | not_found | ignored | rejected",
    )
    payload: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSON,
        nullable=True,
    )
    received_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return (
            f"<CallbackEvent(reference={self.reference!r}, "
            f"outcome={self.outcome!r})>"
        )
