"""Pydantic schemas for payment channels and fee quotes."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ChannelResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    code: str
    name: str
    group_name: Optional[str] = None
    fee_merchant_flat: int
    fee_merchant_percent: Decimal
    fee_customer_flat: int
    fee_customer_percent: Decimal
    minimum_fee: Optional[int] = None
    maximum_fee: Optional[int] = None
    minimum_amount: Optional[int] = None
    maximum_amount: Optional[int] = None
    icon_url: Optional[str] = None
    is_active: bool
    is_enabled: bool
    display_order: int
    last_synced_at: Optional[datetime] = None


class ChannelUpdate(BaseModel):
    """Admin switches that survive a gateway sync."""

    is_enabled: Optional[bool] = None
    display_order: Optional[int] = Field(None, ge=0)


class ChannelSyncResponse(BaseModel):
    status: str = Field(..., description="success | partial | failed")
    synced: int
    skipped: int
    errors: list[str] = Field(default_factory=list)


class FeeQuoteResponse(BaseModel):
    channel_code: str
    amount: int
    fee: int
    total: int
