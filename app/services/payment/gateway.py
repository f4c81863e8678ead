"""Gateway client: outbound calls to the payment gateway.

Creation follows a small saga: the local ``pending`` row is committed
first, then the signed request goes out.  Any failure after that point
deletes the local row and raises a typed error, so the ledger never holds
a pending payment that the gateway was never asked about.  A timeout is
the one ambiguous case (the gateway may have accepted); the merchant
reference is logged so a late callback, which will land as a
``not_found`` callback event, can be traced.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import httpx
from pydantic import ValidationError
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.core.config import Settings
from app.core.exceptions import (
    GatewayError,
    GatewayRejected,
    GatewayTimeout,
    GatewayUnavailable,
    InvalidAmount,
)
from app.core.logging import get_logger
from app.models.channel import PaymentChannel
from app.models.open_payment import OpenPaymentCode
from app.models.transaction import Transaction
from app.schemas.callback import GatewayPaymentPayload
from app.schemas.open_payment import (
    CapturedPaymentResponse,
    CapturePage,
    OpenPaymentCreate,
)
from app.schemas.transaction import ClosedPaymentCreate
from app.services.payment.fees import ChannelFees, quote
from app.services.payment.signature import SignatureEngine
from app.services.payment.status import TransactionStatus, map_gateway_status
from app.services.payment.store import (
    CaptureFilters,
    PendingTransaction,
    TransactionStore,
    utcnow,
)
from app.services.payment.transitions import StatusUpdate

logger = get_logger(__name__)


def new_merchant_ref(prefix: str) -> str:
    """Locally unique merchant reference, e.g. ``TXN-3F2A...``."""
    return f"{prefix}-{uuid.uuid4().hex.upper()}"


def _from_epoch(value: Any) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc).replace(tzinfo=None)


def _to_epoch(value: datetime) -> int:
    return int(value.replace(tzinfo=timezone.utc).timestamp())


def build_http_client(
    config: Settings,
    transport: Optional[httpx.BaseTransport] = None,
) -> httpx.Client:
    """HTTP client pointed at the configured gateway, with an explicit timeout."""
    return httpx.Client(
        base_url=config.resolved_gateway_url,
        timeout=httpx.Timeout(config.gateway_timeout_seconds),
        headers={
            "Authorization": f"Bearer {config.gateway_api_key}",
            "Accept": "application/json",
        },
        transport=transport,
    )


@dataclass(frozen=True)
class GatewayStatusReport:
    """Current gateway-side state of one closed payment."""

    reference: str
    merchant_ref: str
    status: TransactionStatus
    raw_status: str
    amount_received: Optional[int]
    paid_at: Optional[datetime]

    def to_update(self, source: str = "poller") -> StatusUpdate:
        return StatusUpdate(
            status=self.status,
            reference=self.reference,
            merchant_ref=self.merchant_ref,
            amount_received=self.amount_received,
            paid_at=self.paid_at,
            reason=f"gateway status {self.raw_status}",
            source=source,
        )


class GatewayClient:
    """Signed calls to the gateway, with results written through the store."""

    def __init__(
        self,
        http: httpx.Client,
        store: TransactionStore,
        signer: SignatureEngine,
        config: Settings,
    ) -> None:
        self.http = http
        self.store = store
        self.signer = signer
        self.config = config

    # ── Creation ─────────────────────────────────────────────────────

    def create_closed_payment(
        self,
        request: ClosedPaymentCreate,
        channel: PaymentChannel,
        user_id: Optional[str] = None,
    ) -> Transaction:
        """Open a single-use payment for ``request.amount`` on *channel*.

        Raises:
            InvalidAmount: amount outside the channel limits, or order items
                that do not add up to it.
            GatewayError: the gateway call failed; the local row is gone.
        """
        self._check_amount_limits(request.amount, channel)
        order_items = self._order_items(request)
        breakdown = quote(request.amount, ChannelFees.from_channel(channel))

        expiry_hours = request.expiry_hours or self.config.default_expiry_hours
        expired_at = utcnow() + timedelta(hours=expiry_hours)
        merchant_ref = new_merchant_ref("TXN")

        self.store.create_pending(
            PendingTransaction(
                merchant_ref=merchant_ref,
                channel_code=channel.code,
                amount=breakdown.amount,
                fee=breakdown.fee,
                total_amount=breakdown.total,
                customer_name=request.customer_name,
                customer_email=request.customer_email,
                customer_phone=request.customer_phone,
                order_items=order_items,
                user_id=user_id,
                expired_at=expired_at,
            )
        )

        payload = {
            "method": channel.code,
            "merchant_ref": merchant_ref,
            "amount": request.amount,
            "customer_name": request.customer_name,
            "customer_email": request.customer_email,
            "customer_phone": request.customer_phone or "",
            "order_items": order_items,
            "callback_url": self.config.callback_url,
            "return_url": request.return_url or self.config.return_url,
            "expired_time": _to_epoch(expired_at),
            "signature": self.signer.closed_payment(merchant_ref, request.amount),
        }

        try:
            body = self._request("POST", "/transaction/create", json=payload)
            details = self._closed_payment_details(body, merchant_ref)
        except Exception as exc:
            self._rollback_closed(merchant_ref, exc)
            raise

        txn = self.store.attach_gateway_details(merchant_ref, details)
        logger.info(
            "Closed payment created: merchant_ref=%s reference=%s total=%d",
            txn.id,
            txn.reference,
            txn.total_amount,
        )
        return txn

    def create_open_payment_code(
        self,
        request: OpenPaymentCreate,
        channel: PaymentChannel,
        user_id: Optional[str] = None,
    ) -> OpenPaymentCode:
        """Create a reusable pay code on *channel*; same rollback rules as closed payments."""
        merchant_ref = new_merchant_ref("OP")
        self.store.create_open_code(
            merchant_ref=merchant_ref,
            channel_code=channel.code,
            customer_name=request.customer_name,
            user_id=user_id,
        )

        payload: dict[str, Any] = {
            "method": channel.code,
            "merchant_ref": merchant_ref,
            "customer_name": request.customer_name,
            "signature": self.signer.open_payment(channel.code, merchant_ref),
        }
        if request.expiry_hours:
            payload["expired_time"] = _to_epoch(
                utcnow() + timedelta(hours=request.expiry_hours)
            )

        try:
            body = self._request("POST", "/open-payment/create", json=payload)
            data = body.get("data") or {}
            if not data.get("uuid"):
                raise GatewayRejected("Gateway response has no open payment uuid")
            details = {
                "uuid": data["uuid"],
                "pay_code": data.get("pay_code"),
                "qr_string": data.get("qr_string"),
                "qr_url": data.get("qr_url"),
                "expired_at": _from_epoch(data.get("expired_time")),
            }
        except Exception as exc:
            logger.warning(
                "Open payment creation failed, removing %s: %s", merchant_ref, exc
            )
            self.store.delete_open_code(merchant_ref)
            raise

        code = self.store.attach_open_code_details(merchant_ref, details)
        logger.info(
            "Open payment code created: merchant_ref=%s uuid=%s", code.id, code.uuid
        )
        return code

    # ── Read-only queries ────────────────────────────────────────────

    def query_status(self, reference: str) -> GatewayStatusReport:
        """Fetch the gateway's current status for *reference*.

        Raises:
            UnknownGatewayStatus: the gateway reported a status we do not map.
            GatewayError: transport or gateway failure after retries.
        """
        body = self._read("GET", "/transaction/detail", params={"reference": reference})
        try:
            payload = GatewayPaymentPayload.model_validate(body.get("data") or {})
        except ValidationError as exc:
            raise GatewayRejected(
                f"Malformed status response for {reference}: {exc.error_count()} errors"
            ) from exc

        status = map_gateway_status(payload.status)
        return GatewayStatusReport(
            reference=payload.reference,
            merchant_ref=payload.merchant_ref,
            status=status,
            raw_status=payload.status,
            amount_received=payload.settled_amount,
            paid_at=payload.paid_at,
        )

    def list_open_payment_captures(
        self, uuid: str, filters: CaptureFilters
    ) -> CapturePage:
        """Paginated list of payments the gateway captured on open code *uuid*."""
        params: dict[str, Any] = {
            "page": filters.page,
            "per_page": filters.per_page,
        }
        if filters.reference:
            params["reference"] = filters.reference
        if filters.merchant_ref:
            params["merchant_ref"] = filters.merchant_ref
        if filters.start_date:
            params["start_date"] = filters.start_date.isoformat()
        if filters.end_date:
            params["end_date"] = filters.end_date.isoformat()

        body = self._read("GET", f"/open-payment/{uuid}/transactions", params=params)
        rows = body.get("data") or []
        pagination = body.get("pagination") or {}

        items = [
            CapturedPaymentResponse(
                reference=row["reference"],
                amount=int(row.get("amount") or 0),
                fee_merchant=int(row.get("fee_merchant") or 0),
                fee_customer=int(row.get("fee_customer") or 0),
                total_fee=int(row.get("total_fee") or 0),
                amount_received=int(row.get("amount_received") or 0),
                paid_at=_from_epoch(row.get("paid_at")),
            )
            for row in rows
            if str(row.get("status", "PAID")).upper() == "PAID"
        ]
        return CapturePage(
            source="gateway",
            page=int(pagination.get("current_page") or filters.page),
            per_page=int(pagination.get("per_page") or filters.per_page),
            total=int(pagination.get("total") or len(items)),
            items=items,
        )

    def fetch_channels(self) -> list[dict[str, Any]]:
        """Raw channel list from the gateway, for the channel registry."""
        body = self._read("GET", "/merchant/payment-channel")
        data = body.get("data") or []
        if not isinstance(data, list):
            raise GatewayRejected("Channel list is not a list")
        return data

    # ── Internals ────────────────────────────────────────────────────

    def _read(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        """Idempotent call, retried with backoff on transient failures."""
        retrying = Retrying(
            retry=retry_if_exception_type((GatewayTimeout, GatewayUnavailable)),
            stop=stop_after_attempt(max(1, self.config.gateway_retry_attempts)),
            wait=wait_exponential(
                multiplier=0.5, max=self.config.gateway_retry_max_wait_seconds
            ),
            reraise=True,
        )
        return retrying(self._request, method, path, **kwargs)

    def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = self.http.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            logger.error("Gateway timeout: %s %s", method, path)
            raise GatewayTimeout(f"Gateway timed out on {method} {path}") from exc
        except httpx.TransportError as exc:
            logger.error("Gateway unreachable: %s %s (%s)", method, path, exc)
            raise GatewayUnavailable(f"Gateway unreachable: {exc}") from exc

        if response.status_code >= 500:
            logger.error(
                "Gateway server error: %s %s -> %d", method, path, response.status_code
            )
            raise GatewayUnavailable(
                f"Gateway returned HTTP {response.status_code}",
                details={"status_code": response.status_code},
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise GatewayUnavailable(
                f"Gateway returned non-JSON body (HTTP {response.status_code})"
            ) from exc

        if response.status_code >= 400 or not isinstance(body, dict) or not body.get("success"):
            message = body.get("message") if isinstance(body, dict) else None
            logger.warning(
                "Gateway rejected %s %s -> %d: %s",
                method,
                path,
                response.status_code,
                message,
            )
            raise GatewayRejected(
                message or f"Gateway rejected the request (HTTP {response.status_code})",
                details={"status_code": response.status_code},
            )
        return body

    def _closed_payment_details(
        self, body: dict[str, Any], merchant_ref: str
    ) -> dict[str, Any]:
        data = body.get("data") or {}
        if not data.get("reference"):
            raise GatewayRejected("Gateway response has no reference")
        if data.get("merchant_ref") and data["merchant_ref"] != merchant_ref:
            raise GatewayRejected(
                f"Gateway answered for {data['merchant_ref']}, expected {merchant_ref}"
            )
        return {
            "reference": data["reference"],
            "pay_code": data.get("pay_code"),
            "pay_url": data.get("pay_url"),
            "checkout_url": data.get("checkout_url"),
            "qr_string": data.get("qr_string"),
            "qr_url": data.get("qr_url"),
            "fee_merchant": data.get("fee_merchant"),
            "fee_customer": data.get("fee_customer"),
            "expired_at": _from_epoch(data.get("expired_time")),
        }

    def _rollback_closed(self, merchant_ref: str, exc: Exception) -> None:
        deleted = self.store.delete_pending(merchant_ref)
        if isinstance(exc, GatewayTimeout):
            logger.warning(
                "Create timed out for %s; local row removed (deleted=%s). "
                "Gateway may still have accepted it.",
                merchant_ref,
                deleted,
            )
        else:
            logger.warning(
                "Create failed for %s, local row removed (deleted=%s): %s",
                merchant_ref,
                deleted,
                exc,
            )

    @staticmethod
    def _check_amount_limits(amount: int, channel: PaymentChannel) -> None:
        if channel.minimum_amount and amount < channel.minimum_amount:
            raise InvalidAmount(
                f"Amount {amount} is below the {channel.code} minimum "
                f"of {channel.minimum_amount}"
            )
        if channel.maximum_amount and amount > channel.maximum_amount:
            raise InvalidAmount(
                f"Amount {amount} is above the {channel.code} maximum "
                f"of {channel.maximum_amount}"
            )

    @staticmethod
    def _order_items(request: ClosedPaymentCreate) -> list[dict[str, Any]]:
        if not request.order_items:
            return [{"name": "Balance top-up", "price": request.amount, "quantity": 1}]
        items = [item.model_dump(exclude_none=True) for item in request.order_items]
        items_total = sum(item["price"] * item["quantity"] for item in items)
        if items_total != request.amount:
            raise InvalidAmount(
                f"Order items add up to {items_total}, amount is {request.amount}"
            )
        return items
