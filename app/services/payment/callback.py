"""Callback handler: authenticated status notifications from the gateway.

The signature is checked against the raw request bytes before anything is
parsed.  A verified callback is either applied to a closed-payment
transaction through ``apply_status_update`` or, for an open payment code,
recorded as a captured payment keyed by the gateway reference.  Both paths
are idempotent, so the gateway may retry as often as it likes.
"""

from __future__ import annotations

import json
from typing import Any, Optional

from pydantic import ValidationError

from app.core.exceptions import (
    InvalidCallbackPayload,
    OpenPaymentNotFound,
    ReferenceMismatch,
    TransactionNotFound,
    UnknownGatewayStatus,
)
from app.core.logging import get_logger
from app.schemas.callback import CallbackResponse, GatewayPaymentPayload
from app.services.payment.signature import SignatureEngine
from app.services.payment.status import (
    ApplyResult,
    TransactionStatus,
    map_gateway_status,
)
from app.services.payment.store import NewCapture, TransactionStore, utcnow
from app.services.payment.transitions import StatusUpdate, apply_status_update

logger = get_logger(__name__)

PAYMENT_STATUS_EVENT = "payment_status"


class CallbackHandler:
    """Verifies, parses and applies one gateway callback."""

    def __init__(self, store: TransactionStore, signer: SignatureEngine) -> None:
        self.store = store
        self.signer = signer

    def handle(
        self,
        raw_body: bytes,
        signature: Optional[str],
        event: Optional[str] = None,
    ) -> CallbackResponse:
        """Process a callback and describe what happened.

        Raises:
            SignatureMismatch: missing or wrong signature; nothing is parsed.
            InvalidCallbackPayload: body is not a usable status payload.
            UnknownGatewayStatus: status outside the mapped vocabulary.
            ReferenceMismatch: the gateway reference belongs to another payment.
            TransactionNotFound / OpenPaymentNotFound: no local record for
                the ``merchant_ref``.
        """
        self.signer.verify_callback_or_raise(raw_body, signature)

        if event and event.strip() != PAYMENT_STATUS_EVENT:
            logger.info("Ignoring callback event %r", event)
            return CallbackResponse(
                success=True, outcome="ignored", message=f"Event {event} ignored"
            )

        body = self._decode(raw_body)
        try:
            payload = GatewayPaymentPayload.model_validate(body)
        except ValidationError as exc:
            logger.warning("Callback payload rejected: %d errors", exc.error_count())
            raise InvalidCallbackPayload(
                f"Callback payload failed validation ({exc.error_count()} errors)"
            ) from exc

        try:
            status = map_gateway_status(payload.status)
        except UnknownGatewayStatus:
            logger.error(
                "Callback with unknown status %r: merchant_ref=%s reference=%s",
                payload.status,
                payload.merchant_ref,
                payload.reference,
            )
            self._audit("unknown_status", body, payload)
            raise

        if payload.is_closed:
            return self._handle_closed(body, payload, status)
        return self._handle_open(body, payload, status)

    # ── Closed payments ──────────────────────────────────────────────

    def _handle_closed(
        self,
        body: dict[str, Any],
        payload: GatewayPaymentPayload,
        status: TransactionStatus,
    ) -> CallbackResponse:
        txn = self.store.get(payload.merchant_ref)
        if txn is None:
            logger.warning(
                "Callback for unknown transaction: merchant_ref=%s reference=%s status=%s",
                payload.merchant_ref,
                payload.reference,
                payload.status,
            )
            self._audit(ApplyResult.NOT_FOUND.value, body, payload)
            raise TransactionNotFound(
                f"No transaction for merchant_ref {payload.merchant_ref}"
            )

        try:
            result = apply_status_update(
                self.store,
                txn.id,
                StatusUpdate(
                    status=status,
                    reference=payload.reference,
                    merchant_ref=payload.merchant_ref,
                    amount_received=payload.settled_amount,
                    paid_at=payload.paid_at,
                    reason=f"gateway status {payload.status}",
                    source="callback",
                ),
            )
        except ReferenceMismatch:
            self._audit("reference_mismatch", body, payload)
            raise
        self._audit(result.value, body, payload)
        return CallbackResponse(success=True, outcome=result.value)

    # ── Open payment codes ───────────────────────────────────────────

    def _handle_open(
        self,
        body: dict[str, Any],
        payload: GatewayPaymentPayload,
        status: TransactionStatus,
    ) -> CallbackResponse:
        code = self.store.get_open_code(payload.merchant_ref)
        if code is None:
            logger.warning(
                "Callback for unknown open payment: merchant_ref=%s reference=%s",
                payload.merchant_ref,
                payload.reference,
            )
            self._audit(ApplyResult.NOT_FOUND.value, body, payload)
            raise OpenPaymentNotFound(
                f"No open payment for merchant_ref {payload.merchant_ref}"
            )

        if status is not TransactionStatus.PAID:
            logger.info(
                "Open payment %s callback with status %s, nothing to record",
                code.id,
                payload.status,
            )
            self._audit("ignored", body, payload)
            return CallbackResponse(
                success=True,
                outcome="ignored",
                message=f"Status {payload.status} not recorded for open payments",
            )

        settled = payload.settled_amount or 0
        total_amount = payload.total_amount or payload.amount or settled
        result = self.store.record_capture(
            code,
            NewCapture(
                reference=payload.reference,
                amount=total_amount,
                amount_received=settled,
                paid_at=payload.paid_at or utcnow(),
                fee_merchant=payload.fee_merchant or 0,
                fee_customer=payload.fee_customer or 0,
                total_fee=payload.total_fee or 0,
            ),
        )
        self._audit(result.value, body, payload)
        return CallbackResponse(success=True, outcome=result.value)

    # ── Helpers ──────────────────────────────────────────────────────

    @staticmethod
    def _decode(raw_body: bytes) -> dict[str, Any]:
        try:
            body = json.loads(raw_body)
        except (UnicodeDecodeError, ValueError) as exc:
            raise InvalidCallbackPayload("Callback body is not valid JSON") from exc
        if not isinstance(body, dict):
            raise InvalidCallbackPayload("Callback body must be a JSON object")
        return body

    def _audit(
        self, outcome: str, body: dict[str, Any], payload: GatewayPaymentPayload
    ) -> None:
        self.store.record_callback_event(
            outcome=outcome,
            payload=body,
            reference=payload.reference,
            merchant_ref=payload.merchant_ref,
            gateway_status=payload.status,
            is_closed_payment=payload.is_closed,
        )
