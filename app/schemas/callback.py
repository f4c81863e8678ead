"""Pydantic schemas for the gateway's payment-status payloads.

The same field set arrives in a callback body and in a status-query
response, so both paths parse through ``GatewayPaymentPayload``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class GatewayPaymentPayload(BaseModel):
    """Status fields shared by callbacks and ``/transaction/detail``.

    ``paid_at`` and ``expired_time`` arrive as unix timestamps; they are
    stored as naive UTC like every other timestamp column.
    """

    model_config = ConfigDict(extra="allow")

    reference: str = Field(..., min_length=1, max_length=64)
    merchant_ref: str = Field(..., min_length=1, max_length=64)
    status: str
    payment_method: Optional[str] = None
    payment_method_code: Optional[str] = None
    amount: Optional[int] = None
    total_amount: Optional[int] = None
    amount_received: Optional[int] = None
    fee_merchant: Optional[int] = None
    fee_customer: Optional[int] = None
    total_fee: Optional[int] = None
    paid_at: Optional[datetime] = None
    expired_time: Optional[datetime] = None
    is_closed_payment: int = Field(1, description="1 = closed payment, 0 = open code")
    note: Optional[str] = None

    @field_validator("paid_at", "expired_time", mode="before")
    @classmethod
    def _empty_timestamp(cls, value: Any) -> Any:
        if value in ("", 0, "0"):
            return None
        return value

    @field_validator("paid_at", "expired_time")
    @classmethod
    def _naive_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(value)

    @property
    def is_closed(self) -> bool:
        return self.is_closed_payment != 0

    @property
    def settled_amount(self) -> Optional[int]:
        """Amount credited on PAID: ``amount_received``, else ``total_amount``, else ``amount``."""
        for value in (self.amount_received, self.total_amount, self.amount):
            if value is not None:
                return value
        return None


class CallbackResponse(BaseModel):
    """What the callback endpoint answers; the gateway only looks at the status code."""

    success: bool
    outcome: str
    message: Optional[str] = None
