"""Open payment code endpoints.

An open payment code is a reusable pay code (e.g. a static virtual
account) that accepts any number of transfers.  Each transfer arrives as a
callback and is stored as a captured payment.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_current_user_id, get_gateway_client, get_store
from app.core.database import get_db
from app.core.exceptions import OpenPaymentNotFound
from app.core.logging import get_logger
from app.models.open_payment import OpenPaymentCode
from app.schemas.open_payment import (
    CapturedPaymentResponse,
    CapturePage,
    OpenPaymentCreate,
    OpenPaymentResponse,
)
from app.services.payment.channels import get_usable_channel
from app.services.payment.gateway import GatewayClient
from app.services.payment.store import CaptureFilters, TransactionStore

logger = get_logger(__name__)

router = APIRouter()


@router.post("", response_model=OpenPaymentResponse, status_code=201)
def create_open_payment(
    body: OpenPaymentCreate,
    db: Session = Depends(get_db),
    client: GatewayClient = Depends(get_gateway_client),
    user_id: Optional[str] = Depends(get_current_user_id),
) -> OpenPaymentCode:
    """Create a reusable pay code for the member on the chosen channel."""
    channel = get_usable_channel(db, body.channel_code)
    return client.create_open_payment_code(body, channel, user_id=user_id)


@router.get("/{uuid}/captures", response_model=CapturePage)
def list_captures(
    uuid: str,
    source: str = Query(
        "local",
        pattern="^(local|gateway)$",
        description="local = recorded callbacks, gateway = the gateway's own listing",
    ),
    reference: Optional[str] = Query(None, description="Filter by gateway reference"),
    start_date: Optional[date] = Query(None, description="Paid on or after (inclusive)"),
    end_date: Optional[date] = Query(None, description="Paid on or before (inclusive)"),
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=100),
    store: TransactionStore = Depends(get_store),
    client: GatewayClient = Depends(get_gateway_client),
    user_id: Optional[str] = Depends(get_current_user_id),
) -> CapturePage:
    """List the payments captured on an open payment code."""
    code = store.get_open_code_by_uuid(uuid)
    if code is None or (user_id and code.user_id and code.user_id != user_id):
        raise OpenPaymentNotFound(f"No open payment {uuid}")

    filters = CaptureFilters(
        reference=reference,
        merchant_ref=code.id,
        start_date=start_date,
        end_date=end_date,
        page=page,
        per_page=per_page,
    )
    if source == "gateway":
        return client.list_open_payment_captures(uuid, filters)

    rows, total = store.list_captures(code.id, filters)
    return CapturePage(
        source="local",
        page=page,
        per_page=per_page,
        total=total,
        items=[CapturedPaymentResponse.model_validate(row) for row in rows],
    )
