"""Reconciliation poller: pulls status for payments the callbacks missed.

Each cycle selects pending transactions older than the grace period,
asks the gateway for their status and applies it through the same
``apply_status_update`` the callback handler uses.  Rows that turn
terminal are never selected again.  Transport failures leave a row
pending for the next cycle.  A status that names another payment is
counted as an error and changes nothing.
"""

from __future__ import annotations

import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.exceptions import (
    GatewayTimeout,
    GatewayUnavailable,
    PaymentError,
    TransactionNotFound,
)
from app.core.logging import get_logger
from app.services.payment.gateway import GatewayClient
from app.services.payment.status import ApplyResult, TransactionStatus
from app.services.payment.store import TransactionStore, utcnow
from app.services.payment.transitions import apply_status_update

logger = get_logger(__name__)

SessionFactory = Callable[[], Session]
ClientFactory = Callable[[TransactionStore], GatewayClient]


@dataclass
class PollSummary:
    """Counters for one poll cycle."""

    started_at: datetime = field(default_factory=utcnow)
    selected: int = 0
    checked: int = 0
    applied: int = 0
    already_applied: int = 0
    still_pending: int = 0
    skipped: int = 0
    deferred: int = 0
    errors: int = 0
    open_codes_expired: int = 0
    error_details: list[str] = field(default_factory=list)

    def record(self, result: ApplyResult) -> None:
        if result is ApplyResult.APPLIED:
            self.applied += 1
        elif result is ApplyResult.ALREADY_APPLIED:
            self.already_applied += 1
        elif result is ApplyResult.PENDING:
            self.still_pending += 1
        else:
            self.errors += 1

    def to_dict(self) -> dict:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        return data


class ReconciliationPoller:
    """Periodic status poll over stale pending transactions."""

    def __init__(
        self,
        session_factory: SessionFactory,
        client_factory: ClientFactory,
        config: Settings,
    ) -> None:
        self.session_factory = session_factory
        self.client_factory = client_factory
        self.config = config
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ── One cycle ────────────────────────────────────────────────────

    def run_once(self, now: Optional[datetime] = None) -> PollSummary:
        """Poll every stale pending transaction once."""
        now = now or utcnow()
        summary = PollSummary(started_at=now)
        grace = timedelta(seconds=self.config.poll_grace_period_seconds)

        db = self.session_factory()
        try:
            store = TransactionStore(db)
            client = self.client_factory(store)

            # Plain tuples: each transition commits and expires loaded rows.
            targets = [
                (txn.id, txn.reference)
                for txn in store.find_pending_older_than(
                    grace, now=now, limit=self.config.poll_batch_size
                )
            ]
            summary.selected = len(targets)

            for merchant_ref, reference in targets:
                if not reference:
                    summary.skipped += 1
                    continue
                summary.checked += 1
                try:
                    result = self._reconcile(store, client, merchant_ref, reference)
                except (GatewayTimeout, GatewayUnavailable) as exc:
                    logger.warning(
                        "Poll deferred for %s (%s): %s",
                        merchant_ref,
                        exc.error_code,
                        exc.message,
                    )
                    summary.deferred += 1
                except PaymentError as exc:
                    logger.error("Poll failed for %s: %s", merchant_ref, exc.message)
                    summary.errors += 1
                    summary.error_details.append(f"{merchant_ref}: {exc.message}")
                else:
                    summary.record(result)

            for code_id in store.find_lapsed_open_codes(now):
                if store.mark_open_code_expired(code_id) is ApplyResult.APPLIED:
                    summary.open_codes_expired += 1
        finally:
            db.close()

        logger.info(
            "Poll cycle done: selected=%d checked=%d applied=%d pending=%d "
            "deferred=%d errors=%d",
            summary.selected,
            summary.checked,
            summary.applied,
            summary.still_pending,
            summary.deferred,
            summary.errors,
        )
        return summary

    def check(self, merchant_ref: str) -> ApplyResult:
        """Poll a single transaction right now, ignoring the grace period.

        Raises:
            TransactionNotFound: no such transaction.
            GatewayError / UnknownGatewayStatus: the status query failed.
            ReferenceMismatch: the gateway answered for a different payment.
        """
        db = self.session_factory()
        try:
            store = TransactionStore(db)
            txn = store.get(merchant_ref)
            if txn is None:
                raise TransactionNotFound(f"No transaction {merchant_ref}")
            if txn.status != TransactionStatus.PENDING.value:
                return ApplyResult.ALREADY_APPLIED
            if not txn.reference:
                return ApplyResult.PENDING
            reference = txn.reference
            return self._reconcile(
                store, self.client_factory(store), merchant_ref, reference
            )
        finally:
            db.close()

    @staticmethod
    def _reconcile(
        store: TransactionStore,
        client: GatewayClient,
        merchant_ref: str,
        reference: str,
    ) -> ApplyResult:
        report = client.query_status(reference)
        return apply_status_update(store, merchant_ref, report.to_update("poller"))

    # ── Background thread ────────────────────────────────────────────

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._loop, name="paygate-poller", daemon=True
        )
        self._thread.start()
        logger.info(
            "Poller started: interval=%ds grace=%ds",
            self.config.poll_interval_seconds,
            self.config.poll_grace_period_seconds,
        )

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Poller stopped")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.run_once()
            except Exception:
                logger.exception("Poll cycle crashed")
            self._stop.wait(self.config.poll_interval_seconds)
