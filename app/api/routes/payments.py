"""Closed-payment endpoints.

Create a single-use payment (balance top-up), read it back, and force an
immediate status check against the gateway when the member is waiting on
a callback that has not arrived.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import (
    get_current_user_id,
    get_gateway_client,
    get_poller,
    get_store,
)
from app.core.database import get_db
from app.core.exceptions import TransactionNotFound
from app.core.logging import get_logger
from app.models.transaction import Transaction
from app.schemas.transaction import (
    ClosedPaymentCreate,
    StatusCheckResponse,
    TransactionResponse,
)
from app.services.payment.channels import get_usable_channel
from app.services.payment.gateway import GatewayClient
from app.services.payment.poller import ReconciliationPoller
from app.services.payment.store import TransactionStore

logger = get_logger(__name__)

router = APIRouter()


def _load(store: TransactionStore, merchant_ref: str, user_id: Optional[str]) -> Transaction:
    txn = store.get(merchant_ref)
    # Another member's transaction reads as missing.
    if txn is None or (user_id and txn.user_id and txn.user_id != user_id):
        raise TransactionNotFound(f"No transaction {merchant_ref}")
    return txn


@router.post("/closed", response_model=TransactionResponse, status_code=201)
def create_closed_payment(
    body: ClosedPaymentCreate,
    db: Session = Depends(get_db),
    client: GatewayClient = Depends(get_gateway_client),
    user_id: Optional[str] = Depends(get_current_user_id),
) -> Transaction:
    """Start a single-use payment on the chosen channel.

    The response carries the pay code / checkout URL the member pays with.
    The transaction stays ``pending`` until a callback or the poller
    confirms it.
    """
    logger.info(
        "Closed payment requested: amount=%d channel=%s user=%s",
        body.amount,
        body.channel_code,
        user_id,
    )
    channel = get_usable_channel(db, body.channel_code)
    return client.create_closed_payment(body, channel, user_id=user_id)


@router.get("/{merchant_ref}", response_model=TransactionResponse)
def get_payment(
    merchant_ref: str,
    store: TransactionStore = Depends(get_store),
    user_id: Optional[str] = Depends(get_current_user_id),
) -> Transaction:
    """Retrieve a transaction by merchant reference."""
    return _load(store, merchant_ref, user_id)


@router.post("/{merchant_ref}/check-status", response_model=StatusCheckResponse)
def check_payment_status(
    merchant_ref: str,
    store: TransactionStore = Depends(get_store),
    poller: ReconciliationPoller = Depends(get_poller),
    user_id: Optional[str] = Depends(get_current_user_id),
) -> StatusCheckResponse:
    """Ask the gateway for the current status and apply it now."""
    _load(store, merchant_ref, user_id)
    result = poller.check(merchant_ref)

    # The poller committed through its own session.
    store.db.expire_all()
    txn = _load(store, merchant_ref, user_id)
    return StatusCheckResponse(
        merchant_ref=merchant_ref,
        result=result.value,
        transaction=TransactionResponse.model_validate(txn),
    )
