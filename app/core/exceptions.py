"""Typed errors raised by the payment core.

Every error carries the HTTP status it maps to and a ``public_message``
that is safe to show to members.  Raw gateway messages stay in ``details``
and in the logs; they are never returned to the checkout UI.
"""

from __future__ import annotations

from typing import Any, Optional

GENERIC_CREATE_FAILURE = "Payment could not be started"


class PaymentError(Exception):
    """Base class for all payment-core errors."""

    status_code: int = 500
    error_code: str = "PAYMENT_ERROR"
    public_message: str = "Payment processing failed"

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.message = message or self.public_message
        self.details = details or {}
        super().__init__(self.message)


# ── Authentication / validation ─────────────────────────────────────


class SignatureMismatch(PaymentError):
    """Callback signature missing or not matching the raw body."""

    status_code = 401
    error_code = "INVALID_CALLBACK_SIGNATURE"
    public_message = "Invalid signature"


class InvalidCallbackPayload(PaymentError):
    """Verified callback body that is not a usable status payload."""

    status_code = 400
    error_code = "INVALID_CALLBACK_PAYLOAD"
    public_message = "Invalid callback payload"


class ReferenceMismatch(PaymentError):
    """Gateway status names a different payment than the local row."""

    status_code = 409
    error_code = "REFERENCE_MISMATCH"
    public_message = "Payment reference mismatch"


class UnknownGatewayStatus(PaymentError):
    """Gateway reported a status outside the mapped vocabulary."""

    status_code = 422
    error_code = "UNKNOWN_GATEWAY_STATUS"
    public_message = "Unknown payment status"

    def __init__(self, raw_status: Any) -> None:
        self.raw_status = raw_status
        super().__init__(
            f"Unknown gateway status: {raw_status!r}",
            details={"status": raw_status},
        )


class InvalidAmount(PaymentError):
    status_code = 400
    error_code = "INVALID_AMOUNT"
    public_message = "Invalid payment amount"


class ChannelUnavailable(PaymentError):
    status_code = 400
    error_code = "INVALID_PAYMENT_METHOD"
    public_message = "Payment method is not available"


class InvalidFeeSchedule(PaymentError):
    """A channel's fee configuration cannot produce a sane fee."""

    status_code = 500
    error_code = "INVALID_FEE_SCHEDULE"
    public_message = "Payment configuration error"


# ── Lookups ─────────────────────────────────────────────────────────


class TransactionNotFound(PaymentError):
    status_code = 404
    error_code = "TRANSACTION_NOT_FOUND"
    public_message = "Transaction not found"


class OpenPaymentNotFound(PaymentError):
    status_code = 404
    error_code = "OPEN_PAYMENT_NOT_FOUND"
    public_message = "Open payment not found"


# ── Gateway transport ───────────────────────────────────────────────


class GatewayError(PaymentError):
    """Base for failures talking to the remote gateway."""

    status_code = 502
    error_code = "GATEWAY_ERROR"
    public_message = GENERIC_CREATE_FAILURE


class GatewayTimeout(GatewayError):
    status_code = 504
    error_code = "TIMEOUT"


class GatewayUnavailable(GatewayError):
    status_code = 503
    error_code = "NETWORK_ERROR"


class GatewayRejected(GatewayError):
    """The gateway answered, but refused the request."""

    status_code = 502
    error_code = "GATEWAY_REJECTED"
