"""Pydantic schemas for closed-payment requests and transaction reads."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class OrderItem(BaseModel):
    """One line of the order shown on the gateway's checkout page."""

    sku: Optional[str] = Field(None, max_length=64)
    name: str = Field(..., max_length=255)
    price: int = Field(..., ge=0, description="Unit price in whole currency units")
    quantity: int = Field(1, ge=1)


class ClosedPaymentCreate(BaseModel):
    """Request body to start a single-use payment (balance top-up)."""

    amount: int = Field(
        ...,
        gt=0,
        description="Base amount in whole currency units, before fees",
    )
    channel_code: str = Field(
        ...,
        max_length=30,
        description="Payment channel code, e.g. BRIVA or QRIS",
    )
    customer_name: str = Field(..., max_length=255)
    customer_email: str = Field(..., max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    customer_phone: Optional[str] = Field(None, max_length=32)
    order_items: list[OrderItem] = Field(default_factory=list)
    return_url: Optional[str] = Field(None, max_length=512)
    expiry_hours: Optional[int] = Field(
        None,
        ge=1,
        le=24 * 7,
        description="Hours until the payment expires; defaults to settings",
    )


class TransactionResponse(BaseModel):
    """A transaction as returned to the member portal."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="Merchant reference")
    reference: Optional[str] = None
    kind: str
    channel_code: str
    amount: int
    fee: int
    total_amount: int
    amount_received: Optional[int] = None
    status: str = Field(..., description="pending | paid | failed | expired")
    failure_reason: Optional[str] = None
    customer_name: str
    customer_email: str
    customer_phone: Optional[str] = None
    pay_code: Optional[str] = None
    pay_url: Optional[str] = None
    checkout_url: Optional[str] = None
    qr_string: Optional[str] = None
    qr_url: Optional[str] = None
    expired_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class StatusCheckResponse(BaseModel):
    """Result of an on-demand status check against the gateway."""

    merchant_ref: str
    result: str = Field(..., description="applied | already_applied | not_found | pending")
    transaction: TransactionResponse
