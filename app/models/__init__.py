"""SQLAlchemy models for the payment gateway core."""

from app.models.callback_event import CallbackEvent
from app.models.channel import PaymentChannel
from app.models.open_payment import CapturedPayment, OpenPaymentCode
from app.models.transaction import Transaction

__all__ = [
    "CallbackEvent",
    "CapturedPayment",
    "OpenPaymentCode",
    "PaymentChannel",
    "Transaction",
]
