"""Tests for the gateway status vocabulary mapping."""

from __future__ import annotations

import pytest

from app.core.exceptions import UnknownGatewayStatus
from app.services.payment.status import (
    TERMINAL_STATUSES,
    TransactionStatus,
    map_gateway_status,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("UNPAID", TransactionStatus.PENDING),
        ("PAID", TransactionStatus.PAID),
        ("FAILED", TransactionStatus.FAILED),
        ("EXPIRED", TransactionStatus.EXPIRED),
        (" paid ", TransactionStatus.PAID),
        ("Expired", TransactionStatus.EXPIRED),
    ],
)
def test_known_statuses_map(raw, expected):
    assert map_gateway_status(raw) is expected


@pytest.mark.parametrize("raw", ["REFUND", "", "   ", "SETTLED", None, 1])
def test_unknown_statuses_raise(raw):
    """Nothing outside the vocabulary is silently defaulted."""
    with pytest.raises(UnknownGatewayStatus) as exc_info:
        map_gateway_status(raw)
    assert exc_info.value.status_code == 422


def test_terminal_statuses():
    assert TERMINAL_STATUSES == {"paid", "failed", "expired"}
    assert not TransactionStatus.PENDING.is_terminal
    assert all(TransactionStatus(s).is_terminal for s in TERMINAL_STATUSES)
