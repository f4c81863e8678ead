"""The one place a gateway-reported status is applied to the ledger.

Both the callback handler and the reconciliation poller go through
``apply_status_update`` so the two paths cannot drift apart.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from app.core.exceptions import ReferenceMismatch
from app.core.logging import get_logger
from app.models.transaction import Transaction
from app.services.payment.status import ApplyResult, TransactionStatus
from app.services.payment.store import TransactionStore, utcnow

logger = get_logger(__name__)


@dataclass(frozen=True)
class StatusUpdate:
    """A gateway's view of one payment, already mapped to local vocabulary.

    ``merchant_ref`` and ``reference`` are what the gateway named; when set
    they must agree with the row being updated.
    """

    status: TransactionStatus
    reference: Optional[str] = None
    merchant_ref: Optional[str] = None
    amount_received: Optional[int] = None
    paid_at: Optional[datetime] = None
    reason: Optional[str] = None
    source: str = "callback"


def check_same_payment(txn: Transaction, update: StatusUpdate) -> None:
    """Raise ``ReferenceMismatch`` if *update* describes another payment."""
    if update.merchant_ref and update.merchant_ref != txn.id:
        raise ReferenceMismatch(
            f"Status for merchant_ref {update.merchant_ref} applied to {txn.id}",
            details={"merchant_ref": txn.id, "reported": update.merchant_ref},
        )
    if txn.reference and update.reference and update.reference != txn.reference:
        raise ReferenceMismatch(
            f"Reference {update.reference} does not belong to {txn.id}",
            details={"stored": txn.reference, "reported": update.reference},
        )


def apply_status_update(
    store: TransactionStore,
    merchant_ref: str,
    update: StatusUpdate,
) -> ApplyResult:
    """Move a pending transaction to the state the gateway reports.

    Returns:
        ``APPLIED`` if this call made the transition, ``ALREADY_APPLIED``
        if the row was already terminal, ``NOT_FOUND`` if there is no such
        row, ``PENDING`` if the gateway still reports it unpaid.

    Raises:
        ReferenceMismatch: the update names a different merchant_ref or
            gateway reference than the stored row; nothing is changed.
    """
    txn = store.get(merchant_ref)
    if txn is None:
        result = ApplyResult.NOT_FOUND
    else:
        try:
            check_same_payment(txn, update)
        except ReferenceMismatch as exc:
            logger.warning(
                "Status update via %s rejected for %s: %s",
                update.source,
                merchant_ref,
                exc.message,
            )
            raise
        result = _apply(store, txn, update)

    logger.info(
        "Status update via %s: merchant_ref=%s reference=%s status=%s result=%s",
        update.source,
        merchant_ref,
        update.reference,
        update.status.value,
        result.value,
    )
    return result


def _apply(store: TransactionStore, txn: Transaction, update: StatusUpdate) -> ApplyResult:
    if update.status is TransactionStatus.PAID:
        amount_received = update.amount_received
        if amount_received is None:
            amount_received = txn.total_amount
        return store.mark_paid(
            txn.id,
            amount_received=amount_received,
            paid_at=update.paid_at or utcnow(),
        )
    if update.status is TransactionStatus.FAILED:
        return store.mark_failed(txn.id, reason=update.reason or "failed")
    if update.status is TransactionStatus.EXPIRED:
        return store.mark_expired(txn.id)
    if txn.status != TransactionStatus.PENDING.value:
        return ApplyResult.ALREADY_APPLIED
    return ApplyResult.PENDING
