"""Gateway callback endpoint.

The gateway only looks at the HTTP status: 2xx stops its retries,
anything else makes it try again later.  Signature and lookup failures
are raised as ``PaymentError`` subclasses and rendered by the
application's exception handler.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool

from app.api.deps import get_signer, get_store
from app.core.logging import get_logger
from app.schemas.callback import CallbackResponse
from app.services.payment.callback import CallbackHandler
from app.services.payment.signature import SignatureEngine
from app.services.payment.store import TransactionStore

logger = get_logger(__name__)

router = APIRouter()

SIGNATURE_HEADER = "X-Callback-Signature"
EVENT_HEADER = "X-Callback-Event"


@router.post("/callback", response_model=CallbackResponse)
async def gateway_callback(
    request: Request,
    store: TransactionStore = Depends(get_store),
    signer: SignatureEngine = Depends(get_signer),
) -> CallbackResponse:
    """Receive a payment status notification from the gateway.

    The body is read on the event loop; verification and the database
    writes run in the threadpool like the sync routes.
    """
    raw_body = await request.body()
    handler = CallbackHandler(store=store, signer=signer)
    response = await run_in_threadpool(
        handler.handle,
        raw_body,
        signature=request.headers.get(SIGNATURE_HEADER),
        event=request.headers.get(EVENT_HEADER),
    )
    logger.info("Callback processed: outcome=%s", response.outcome)
    return response
