"""Local status vocabulary and its mapping from the gateway's."""

from __future__ import annotations

import enum
from typing import Any

from app.core.exceptions import UnknownGatewayStatus


class TransactionStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self is not TransactionStatus.PENDING


class OpenPaymentStatus(str, enum.Enum):
    ACTIVE = "active"
    EXPIRED = "expired"


class ApplyResult(str, enum.Enum):
    """Outcome of applying a status update to the ledger.

    ``ALREADY_APPLIED`` is a success: the row was terminal before this
    update arrived and was left untouched.  ``PENDING`` means the gateway
    still reports the payment as unpaid, so there was nothing to apply.
    """

    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"
    NOT_FOUND = "not_found"
    PENDING = "pending"


TERMINAL_STATUSES = frozenset(
    s.value for s in TransactionStatus if s is not TransactionStatus.PENDING
)

# Every status the gateway is known to send for a payment we can settle.
# REFUND is deliberately absent: it has no forward transition from a
# terminal state and needs a human.
GATEWAY_STATUS_MAP: dict[str, TransactionStatus] = {
    "UNPAID": TransactionStatus.PENDING,
    "PAID": TransactionStatus.PAID,
    "FAILED": TransactionStatus.FAILED,
    "EXPIRED": TransactionStatus.EXPIRED,
}


def map_gateway_status(raw: Any) -> TransactionStatus:
    """Translate a gateway status string into the local enum.

    Raises:
        UnknownGatewayStatus: for anything not in ``GATEWAY_STATUS_MAP``.
    """
    if not isinstance(raw, str):
        raise UnknownGatewayStatus(raw)
    status = GATEWAY_STATUS_MAP.get(raw.strip().upper())
    if status is None:
        raise UnknownGatewayStatus(raw)
    return status
