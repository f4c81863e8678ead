"""Payment channel endpoints: list, sync from the gateway, toggle, quote."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.api.deps import get_gateway_client
from app.core.database import get_db
from app.core.logging import get_logger
from app.models.channel import PaymentChannel
from app.schemas.channel import (
    ChannelResponse,
    ChannelSyncResponse,
    ChannelUpdate,
    FeeQuoteResponse,
)
from app.services.payment.channels import (
    get_usable_channel,
    list_channels,
    set_channel_enabled,
    sync_channels,
)
from app.services.payment.fees import ChannelFees, quote
from app.services.payment.gateway import GatewayClient

logger = get_logger(__name__)

router = APIRouter()


@router.get("", response_model=List[ChannelResponse])
def get_channels(
    include_disabled: bool = Query(
        False, description="Also return inactive and locally disabled channels"
    ),
    db: Session = Depends(get_db),
) -> list[PaymentChannel]:
    """Channels available at checkout, in display order."""
    return list_channels(db, include_disabled=include_disabled)


@router.post("/sync", response_model=ChannelSyncResponse)
def sync(
    db: Session = Depends(get_db),
    client: GatewayClient = Depends(get_gateway_client),
) -> ChannelSyncResponse:
    """Refresh names, fees and limits from the gateway's channel list."""
    result = sync_channels(db, client)
    return ChannelSyncResponse(
        status=result.status,
        synced=result.synced,
        skipped=result.skipped,
        errors=result.errors,
    )


@router.patch("/{code}", response_model=ChannelResponse)
def update_channel(
    code: str,
    body: ChannelUpdate,
    db: Session = Depends(get_db),
) -> PaymentChannel:
    """Enable/disable a channel or change its display order."""
    channel = set_channel_enabled(
        db, code, enabled=body.is_enabled, display_order=body.display_order
    )
    if channel is None:
        raise HTTPException(status_code=404, detail=f"Channel {code} not found")
    return channel


@router.post("/{code}/quote", response_model=FeeQuoteResponse)
def quote_fee(
    code: str,
    amount: int = Query(..., gt=0, description="Base amount before fees"),
    db: Session = Depends(get_db),
) -> FeeQuoteResponse:
    """Fee and total the member would pay for ``amount`` on this channel."""
    channel = get_usable_channel(db, code)
    breakdown = quote(amount, ChannelFees.from_channel(channel))
    return FeeQuoteResponse(
        channel_code=channel.code,
        amount=breakdown.amount,
        fee=breakdown.fee,
        total=breakdown.total,
    )
