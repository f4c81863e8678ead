"""Tests for the open payment code endpoints."""

from __future__ import annotations

from datetime import datetime

from app.services.payment.store import NewCapture, TransactionStore

OPEN_URL = "/api/v1/open-payments"


def _gateway_created() -> dict:
    return {
        "success": True,
        "data": {"uuid": "op-uuid-1", "pay_code": "77770001", "expired_time": 0},
    }


def _create(client, gateway, user_id: str = "user-1") -> dict:
    gateway.on("POST", "/open-payment/create", _gateway_created())
    response = client.post(
        OPEN_URL,
        json={"channel_code": "BRIVA", "customer_name": "Budi"},
        headers={"X-User-Id": user_id},
    )
    assert response.status_code == 201
    return response.json()


class TestCreateOpenPayment:
    def test_create(self, client, gateway, channel):
        data = _create(client, gateway)
        assert data["uuid"] == "op-uuid-1"
        assert data["pay_code"] == "77770001"
        assert data["status"] == "active"
        assert data["expired_at"] is None
        assert data["id"].startswith("OP-")

    def test_gateway_rejection(self, client, gateway, channel):
        gateway.on("POST", "/open-payment/create", {"success": False, "message": "nope"})
        response = client.post(OPEN_URL, json={"channel_code": "BRIVA", "customer_name": "Budi"})
        assert response.status_code == 502


class TestListCaptures:
    def _seed_captures(self, db_session, open_payment_id: str) -> None:
        store = TransactionStore(db_session)
        code = store.get_open_code(open_payment_id)
        for i, day in enumerate([10, 11, 12]):
            store.record_capture(
                code,
                NewCapture(
                    reference=f"T-CAP-{i}",
                    amount=50000,
                    amount_received=45750,
                    paid_at=datetime(2025, 1, day, 9, 0, 0),
                ),
            )

    def test_local_captures(self, client, gateway, channel, db_session):
        created = _create(client, gateway)
        self._seed_captures(db_session, created["id"])

        response = client.get(
            f"{OPEN_URL}/op-uuid-1/captures",
            params={"per_page": 2},
            headers={"X-User-Id": "user-1"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["source"] == "local"
        assert data["total"] == 3
        assert [item["reference"] for item in data["items"]] == ["T-CAP-2", "T-CAP-1"]

    def test_local_captures_date_filter(self, client, gateway, channel, db_session):
        created = _create(client, gateway)
        self._seed_captures(db_session, created["id"])

        response = client.get(
            f"{OPEN_URL}/op-uuid-1/captures",
            params={"start_date": "2025-01-11", "end_date": "2025-01-11"},
        )

        assert response.json()["total"] == 1

    def test_gateway_captures(self, client, gateway, channel):
        _create(client, gateway)
        gateway.on(
            "GET",
            "/open-payment/op-uuid-1/transactions",
            {
                "success": True,
                "data": [
                    {"reference": "T-GW-1", "amount": 20000, "amount_received": 16000, "status": "PAID"}
                ],
                "pagination": {"total": 1, "current_page": 1, "per_page": 10},
            },
        )

        response = client.get(f"{OPEN_URL}/op-uuid-1/captures", params={"source": "gateway"})

        assert response.status_code == 200
        data = response.json()
        assert data["source"] == "gateway"
        assert data["items"][0]["reference"] == "T-GW-1"

    def test_unknown_code_404(self, client):
        response = client.get(f"{OPEN_URL}/missing/captures")
        assert response.status_code == 404
        assert response.json()["error_code"] == "OPEN_PAYMENT_NOT_FOUND"

    def test_other_members_code_404(self, client, gateway, channel):
        _create(client, gateway, user_id="user-1")
        response = client.get(
            f"{OPEN_URL}/op-uuid-1/captures", headers={"X-User-Id": "user-2"}
        )
        assert response.status_code == 404

    def test_invalid_source_422(self, client, gateway, channel):
        _create(client, gateway)
        response = client.get(f"{OPEN_URL}/op-uuid-1/captures", params={"source": "both"})
        assert response.status_code == 422
