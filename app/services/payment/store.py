"""Transaction store: the local ledger and its state machine.

Every terminal transition is one conditional ``UPDATE ... WHERE status =
'pending'``.  Whoever's update matches the row wins; anyone racing it (a
callback and the poller confirming the same payment, or a replayed
callback) gets ``ALREADY_APPLIED`` and changes nothing.  There is no
read-then-write window.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.logging import get_logger
from app.models.callback_event import CallbackEvent
from app.models.open_payment import CapturedPayment, OpenPaymentCode
from app.models.transaction import Transaction
from app.services.payment.status import ApplyResult, OpenPaymentStatus, TransactionStatus

logger = get_logger(__name__)

PENDING = TransactionStatus.PENDING.value

# Gateway response fields copied onto a pending row once it is accepted.
_GATEWAY_DETAIL_FIELDS = (
    "reference",
    "pay_code",
    "pay_url",
    "checkout_url",
    "qr_string",
    "qr_url",
    "fee_merchant",
    "fee_customer",
    "expired_at",
)
_OPEN_CODE_DETAIL_FIELDS = ("uuid", "pay_code", "qr_string", "qr_url", "expired_at")


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass
class PendingTransaction:
    """Everything needed to open a local ledger row before calling the gateway."""

    merchant_ref: str
    channel_code: str
    amount: int
    fee: int
    total_amount: int
    customer_name: str
    customer_email: str
    customer_phone: Optional[str] = None
    order_items: list[dict[str, Any]] = field(default_factory=list)
    user_id: Optional[str] = None
    expired_at: Optional[datetime] = None


@dataclass
class NewCapture:
    reference: str
    amount: int
    amount_received: int
    paid_at: datetime
    fee_merchant: int = 0
    fee_customer: int = 0
    total_fee: int = 0


@dataclass
class CaptureFilters:
    reference: Optional[str] = None
    merchant_ref: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    page: int = 1
    per_page: int = 10


class TransactionStore:
    """Reads and writes payment records through one SQLAlchemy session."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # ── Closed-payment transactions ──────────────────────────────────

    def create_pending(self, pending: PendingTransaction) -> Transaction:
        """Insert and commit a ``pending`` row for *pending*."""
        now = utcnow()
        txn = Transaction(
            id=pending.merchant_ref,
            kind="closed",
            user_id=pending.user_id,
            channel_code=pending.channel_code,
            amount=pending.amount,
            fee=pending.fee,
            total_amount=pending.total_amount,
            status=PENDING,
            customer_name=pending.customer_name,
            customer_email=pending.customer_email,
            customer_phone=pending.customer_phone,
            order_items=pending.order_items,
            expired_at=pending.expired_at,
            created_at=now,
            updated_at=now,
        )
        self.db.add(txn)
        self.db.commit()
        self.db.refresh(txn)
        logger.info(
            "Pending transaction created: merchant_ref=%s total=%d channel=%s",
            txn.id,
            txn.total_amount,
            txn.channel_code,
        )
        return txn

    def attach_gateway_details(
        self, merchant_ref: str, details: dict[str, Any]
    ) -> Transaction:
        """Copy the gateway's acceptance data (reference, pay code, ...) onto the row."""
        txn = self.get(merchant_ref)
        if txn is None:
            raise LookupError(f"Transaction {merchant_ref} vanished before attach")
        for name in _GATEWAY_DETAIL_FIELDS:
            if details.get(name) is not None:
                setattr(txn, name, details[name])
        txn.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(txn)
        return txn

    def delete_pending(self, merchant_ref: str) -> bool:
        """Compensating delete for a create that failed; only touches pending rows."""
        result = self.db.execute(
            delete(Transaction)
            .where(Transaction.id == merchant_ref, Transaction.status == PENDING)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount == 1

    def get(self, merchant_ref: str) -> Optional[Transaction]:
        return self.db.get(Transaction, merchant_ref)

    def get_by_reference(self, reference: str) -> Optional[Transaction]:
        return self.db.execute(
            select(Transaction).where(Transaction.reference == reference)
        ).scalar_one_or_none()

    def mark_paid(
        self,
        merchant_ref: str,
        amount_received: int,
        paid_at: datetime,
    ) -> ApplyResult:
        return self._transition(
            merchant_ref,
            status=TransactionStatus.PAID.value,
            amount_received=int(amount_received),
            paid_at=paid_at,
        )

    def mark_failed(self, merchant_ref: str, reason: Optional[str] = None) -> ApplyResult:
        return self._transition(
            merchant_ref,
            status=TransactionStatus.FAILED.value,
            failure_reason=reason,
        )

    def mark_expired(self, merchant_ref: str) -> ApplyResult:
        return self._transition(
            merchant_ref,
            status=TransactionStatus.EXPIRED.value,
            failure_reason="expired",
        )

    def find_pending_older_than(
        self,
        duration: timedelta,
        now: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[Transaction]:
        """Pending rows created at least *duration* ago, oldest first."""
        cutoff = (now or utcnow()) - duration
        query = (
            select(Transaction)
            .where(Transaction.status == PENDING, Transaction.created_at <= cutoff)
            .order_by(Transaction.created_at.asc())
        )
        if limit:
            query = query.limit(limit)
        return list(self.db.execute(query).scalars().all())

    def _transition(self, merchant_ref: str, **values: Any) -> ApplyResult:
        values["updated_at"] = utcnow()
        result = self.db.execute(
            update(Transaction)
            .where(Transaction.id == merchant_ref, Transaction.status == PENDING)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            self.db.commit()
            logger.info(
                "Transaction %s -> %s", merchant_ref, values["status"]
            )
            return ApplyResult.APPLIED

        self.db.rollback()
        current = self.db.execute(
            select(Transaction.status).where(Transaction.id == merchant_ref)
        ).scalar_one_or_none()
        if current is None:
            logger.warning("Transition on unknown transaction %s", merchant_ref)
            return ApplyResult.NOT_FOUND

        logger.info(
            "Transaction %s already %s, ignoring -> %s",
            merchant_ref,
            current,
            values["status"],
        )
        return ApplyResult.ALREADY_APPLIED

    # ── Open payment codes ───────────────────────────────────────────

    def create_open_code(
        self,
        merchant_ref: str,
        channel_code: str,
        customer_name: str,
        user_id: Optional[str] = None,
    ) -> OpenPaymentCode:
        now = utcnow()
        code = OpenPaymentCode(
            id=merchant_ref,
            user_id=user_id,
            channel_code=channel_code,
            customer_name=customer_name,
            status=OpenPaymentStatus.ACTIVE.value,
            created_at=now,
            updated_at=now,
        )
        self.db.add(code)
        self.db.commit()
        self.db.refresh(code)
        return code

    def attach_open_code_details(
        self, merchant_ref: str, details: dict[str, Any]
    ) -> OpenPaymentCode:
        code = self.get_open_code(merchant_ref)
        if code is None:
            raise LookupError(f"Open payment {merchant_ref} vanished before attach")
        for name in _OPEN_CODE_DETAIL_FIELDS:
            if details.get(name) is not None:
                setattr(code, name, details[name])
        code.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(code)
        return code

    def delete_open_code(self, merchant_ref: str) -> bool:
        """Compensating delete; refuses to drop a code that already has captures."""
        has_captures = self.db.execute(
            select(func.count(CapturedPayment.id)).where(
                CapturedPayment.open_payment_id == merchant_ref
            )
        ).scalar_one()
        if has_captures:
            return False
        result = self.db.execute(
            delete(OpenPaymentCode)
            .where(OpenPaymentCode.id == merchant_ref)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount == 1

    def get_open_code(self, merchant_ref: str) -> Optional[OpenPaymentCode]:
        return self.db.get(OpenPaymentCode, merchant_ref)

    def get_open_code_by_uuid(self, uuid: str) -> Optional[OpenPaymentCode]:
        return self.db.execute(
            select(OpenPaymentCode).where(OpenPaymentCode.uuid == uuid)
        ).scalar_one_or_none()

    def find_lapsed_open_codes(self, now: Optional[datetime] = None) -> list[str]:
        """Ids of active codes whose expiry time has passed."""
        return list(
            self.db.execute(
                select(OpenPaymentCode.id).where(
                    OpenPaymentCode.status == OpenPaymentStatus.ACTIVE.value,
                    OpenPaymentCode.expired_at.is_not(None),
                    OpenPaymentCode.expired_at <= (now or utcnow()),
                )
            )
            .scalars()
            .all()
        )

    def mark_open_code_expired(self, merchant_ref: str) -> ApplyResult:
        result = self.db.execute(
            update(OpenPaymentCode)
            .where(
                OpenPaymentCode.id == merchant_ref,
                OpenPaymentCode.status == OpenPaymentStatus.ACTIVE.value,
            )
            .values(status=OpenPaymentStatus.EXPIRED.value, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        if result.rowcount == 1:
            return ApplyResult.APPLIED
        if self.get_open_code(merchant_ref) is None:
            return ApplyResult.NOT_FOUND
        return ApplyResult.ALREADY_APPLIED

    def record_capture(
        self, open_code: OpenPaymentCode, capture: NewCapture
    ) -> ApplyResult:
        """Insert one captured payment; a repeated gateway reference is a no-op."""
        exists = self.db.execute(
            select(CapturedPayment.id).where(
                CapturedPayment.reference == capture.reference
            )
        ).scalar_one_or_none()
        if exists is not None:
            logger.info("Capture %s already recorded", capture.reference)
            return ApplyResult.ALREADY_APPLIED

        self.db.add(
            CapturedPayment(
                open_payment_id=open_code.id,
                reference=capture.reference,
                amount=capture.amount,
                fee_merchant=capture.fee_merchant,
                fee_customer=capture.fee_customer,
                total_fee=capture.total_fee,
                amount_received=capture.amount_received,
                paid_at=capture.paid_at,
            )
        )
        try:
            self.db.commit()
        except IntegrityError:
            # Lost the race against a concurrent insert of the same reference.
            self.db.rollback()
            logger.info("Capture %s recorded concurrently", capture.reference)
            return ApplyResult.ALREADY_APPLIED

        logger.info(
            "Capture recorded: open_payment=%s reference=%s amount=%d",
            open_code.id,
            capture.reference,
            capture.amount,
        )
        return ApplyResult.APPLIED

    def list_captures(
        self, open_payment_id: str, filters: CaptureFilters
    ) -> tuple[list[CapturedPayment], int]:
        """One page of captures, newest first, plus the unpaginated total."""
        conditions = [CapturedPayment.open_payment_id == open_payment_id]
        if filters.reference:
            conditions.append(CapturedPayment.reference == filters.reference)
        if filters.start_date:
            conditions.append(
                CapturedPayment.paid_at
                >= datetime(
                    filters.start_date.year,
                    filters.start_date.month,
                    filters.start_date.day,
                )
            )
        if filters.end_date:
            conditions.append(
                CapturedPayment.paid_at
                <= datetime(
                    filters.end_date.year,
                    filters.end_date.month,
                    filters.end_date.day,
                    23,
                    59,
                    59,
                )
            )

        total = self.db.execute(
            select(func.count(CapturedPayment.id)).where(*conditions)
        ).scalar_one()
        offset = (filters.page - 1) * filters.per_page
        rows = (
            self.db.execute(
                select(CapturedPayment)
                .where(*conditions)
                .order_by(CapturedPayment.paid_at.desc())
                .offset(offset)
                .limit(filters.per_page)
            )
            .scalars()
            .all()
        )
        return list(rows), total

    # ── Audit ────────────────────────────────────────────────────────

    def record_callback_event(
        self,
        outcome: str,
        payload: Optional[dict[str, Any]],
        reference: Optional[str] = None,
        merchant_ref: Optional[str] = None,
        gateway_status: Optional[str] = None,
        is_closed_payment: bool = True,
    ) -> CallbackEvent:
        event = CallbackEvent(
            reference=reference,
            merchant_ref=merchant_ref,
            gateway_status=gateway_status,
            is_closed_payment=is_closed_payment,
            outcome=outcome,
            payload=payload,
            received_at=utcnow(),
        )
        self.db.add(event)
        self.db.commit()
        return event
