"""Tests for the payment channel endpoints."""

from __future__ import annotations

CHANNELS_URL = "/api/v1/channels"


def test_list_channels(client, channel):
    response = client.get(CHANNELS_URL)
    assert response.status_code == 200
    data = response.json()
    assert [c["code"] for c in data] == ["BRIVA"]
    assert data[0]["fee_merchant_flat"] == 4000


def test_disable_channel(client, channel):
    response = client.patch(f"{CHANNELS_URL}/BRIVA", json={"is_enabled": False})
    assert response.status_code == 200
    assert response.json()["is_enabled"] is False

    assert client.get(CHANNELS_URL).json() == []
    listed = client.get(CHANNELS_URL, params={"include_disabled": True}).json()
    assert [c["code"] for c in listed] == ["BRIVA"]


def test_patch_unknown_channel_404(client):
    response = client.patch(f"{CHANNELS_URL}/NOPE", json={"is_enabled": True})
    assert response.status_code == 404


def test_quote(client, channel):
    response = client.post(f"{CHANNELS_URL}/BRIVA/quote", params={"amount": 100000})
    assert response.status_code == 200
    assert response.json() == {
        "channel_code": "BRIVA",
        "amount": 100000,
        "fee": 5500,
        "total": 105500,
    }


def test_quote_requires_positive_amount(client, channel):
    response = client.post(f"{CHANNELS_URL}/BRIVA/quote", params={"amount": 0})
    assert response.status_code == 422


def test_sync(client, gateway):
    gateway.on(
        "GET",
        "/merchant/payment-channel",
        {
            "success": True,
            "data": [
                {
                    "code": "QRIS",
                    "name": "QRIS",
                    "group": "E-Wallet",
                    "fee_merchant": {"flat": 750, "percent": "0.70"},
                    "fee_customer": {"flat": 0, "percent": 0},
                    "minimum_fee": 0,
                    "maximum_fee": 0,
                    "active": True,
                }
            ],
        },
    )

    response = client.post(f"{CHANNELS_URL}/sync")

    assert response.status_code == 200
    assert response.json()["status"] == "success"
    assert response.json()["synced"] == 1
    assert [c["code"] for c in client.get(CHANNELS_URL).json()] == ["QRIS"]


def test_sync_gateway_down(client, gateway):
    gateway.on("GET", "/merchant/payment-channel", {"success": False, "message": "bad key"})
    response = client.post(f"{CHANNELS_URL}/sync")
    assert response.status_code == 502
