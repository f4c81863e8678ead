"""Tests for the reconciliation poll endpoints."""

from __future__ import annotations

import pytest

from app.services.payment import jobs
from app.services.payment.store import PendingTransaction, TransactionStore

RECON_URL = "/api/v1/reconciliation"


@pytest.fixture(autouse=True)
def _clear_jobs():
    jobs._jobs.clear()
    yield
    jobs._jobs.clear()


def test_poll_with_nothing_pending(client):
    response = client.post(f"{RECON_URL}/poll")
    assert response.status_code == 200
    data = response.json()
    assert data["selected"] == 0
    assert data["applied"] == 0


def test_poll_skips_fresh_rows(client, db_session):
    TransactionStore(db_session).create_pending(
        PendingTransaction(
            merchant_ref="TXN-1",
            channel_code="BRIVA",
            amount=100000,
            fee=5500,
            total_amount=105500,
            customer_name="Budi",
            customer_email="budi@example.com",
        )
    )
    response = client.post(f"{RECON_URL}/poll")
    assert response.json()["selected"] == 0


def test_poll_async_job_completes(client):
    """TestClient runs background tasks before returning the response."""
    response = client.post(f"{RECON_URL}/poll-async")
    assert response.status_code == 200
    job_id = response.json()["job_id"]

    job = client.get(f"{RECON_URL}/jobs/{job_id}").json()
    assert job["status"] == "completed"
    assert job["summary"]["selected"] == 0

    listed = client.get(f"{RECON_URL}/jobs").json()
    assert [j["job_id"] for j in listed] == [job_id]


def test_unknown_job_404(client):
    response = client.get(f"{RECON_URL}/jobs/nope")
    assert response.status_code == 404
