"""Pydantic schemas for open payment codes and their captured payments."""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class OpenPaymentCreate(BaseModel):
    """Request body to create a reusable pay code."""

    channel_code: str = Field(..., max_length=30)
    customer_name: str = Field(..., max_length=255)
    expiry_hours: Optional[int] = Field(
        None,
        ge=1,
        description="Hours until the code stops accepting payments; None = no expiry",
    )


class OpenPaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="Merchant reference")
    uuid: Optional[str] = None
    channel_code: str
    customer_name: str
    pay_code: Optional[str] = None
    qr_string: Optional[str] = None
    qr_url: Optional[str] = None
    status: str = Field(..., description="active | expired")
    expired_at: Optional[datetime] = None
    created_at: datetime


class CapturedPaymentResponse(BaseModel):
    """One transfer received on an open payment code.

    Built either from a local ``CapturedPayment`` row or from a gateway
    listing, hence the optional ``id``.
    """

    model_config = ConfigDict(from_attributes=True)

    id: Optional[UUID] = None
    reference: str
    amount: int
    fee_merchant: int = 0
    fee_customer: int = 0
    total_fee: int = 0
    amount_received: int
    paid_at: Optional[datetime] = None


class CapturePage(BaseModel):
    source: str = Field(..., description="local | gateway")
    page: int
    per_page: int
    total: int
    items: list[CapturedPaymentResponse]
