"""Tests for the channel registry: sync, listing, admin switches, startup check."""

from __future__ import annotations

from decimal import Decimal

import pytest

from app.core.exceptions import ChannelUnavailable, InvalidFeeSchedule
from app.models.channel import PaymentChannel
from app.services.payment.channels import (
    get_usable_channel,
    list_channels,
    set_channel_enabled,
    sync_channels,
    validate_stored_channels,
)


def _gateway_channel(code: str, **overrides) -> dict:
    data = {
        "group": "Virtual Account",
        "code": code,
        "name": f"{code} Virtual Account",
        "type": "DIRECT",
        "fee_merchant": {"flat": 4000, "percent": "1.50"},
        "fee_customer": {"flat": 0, "percent": 0},
        "total_fee": {"flat": 4000, "percent": "1.50"},
        "minimum_fee": 0,
        "maximum_fee": 0,
        "minimum_amount": 10000,
        "maximum_amount": 50000000,
        "icon_url": f"https://gateway.test/icons/{code}.png",
        "active": True,
    }
    data.update(overrides)
    return data


def _channel_list(*channels) -> dict:
    return {"success": True, "data": list(channels)}


# ── sync_channels ────────────────────────────────────────────────────


class TestSyncChannels:
    def test_inserts_new_channels(self, db_session, gateway, gateway_client):
        gateway.on(
            "GET",
            "/merchant/payment-channel",
            _channel_list(_gateway_channel("BRIVA"), _gateway_channel("QRIS")),
        )

        result = sync_channels(db_session, gateway_client)

        assert result.status == "success"
        assert result.synced == 2
        briva = db_session.get(PaymentChannel, "BRIVA")
        assert briva.fee_merchant_flat == 4000
        assert briva.fee_merchant_percent == Decimal("1.5")
        assert briva.group_name == "Virtual Account"
        assert briva.is_enabled is True
        assert briva.last_synced_at is not None

    def test_preserves_local_switches(self, db_session, gateway, gateway_client, channel):
        channel.is_enabled = False
        channel.display_order = 7
        db_session.commit()
        gateway.on(
            "GET",
            "/merchant/payment-channel",
            _channel_list(_gateway_channel("BRIVA", fee_merchant={"flat": 3000, "percent": 0})),
        )

        sync_channels(db_session, gateway_client)

        db_session.expire_all()
        briva = db_session.get(PaymentChannel, "BRIVA")
        assert briva.fee_merchant_flat == 3000
        assert briva.is_enabled is False
        assert briva.display_order == 7

    def test_invalid_schedule_skipped(self, db_session, gateway, gateway_client):
        gateway.on(
            "GET",
            "/merchant/payment-channel",
            _channel_list(
                _gateway_channel("BRIVA"),
                _gateway_channel("BAD", fee_merchant={"flat": -1, "percent": 0}),
                _gateway_channel("WORSE", fee_customer={"flat": 0, "percent": "abc"}),
            ),
        )

        result = sync_channels(db_session, gateway_client)

        assert result.status == "partial"
        assert result.synced == 1
        assert result.skipped == 2
        assert db_session.get(PaymentChannel, "BAD") is None
        assert db_session.get(PaymentChannel, "WORSE") is None

    def test_missing_channels_deactivated(self, db_session, gateway, gateway_client, channel):
        gateway.on(
            "GET", "/merchant/payment-channel", _channel_list(_gateway_channel("QRIS"))
        )

        result = sync_channels(db_session, gateway_client)

        assert result.deactivated == 1
        db_session.expire_all()
        assert db_session.get(PaymentChannel, "BRIVA").is_active is False


# ── Lookup and admin switches ────────────────────────────────────────


class TestLookup:
    def test_usable_channel(self, db_session, channel):
        assert get_usable_channel(db_session, "BRIVA").code == "BRIVA"

    def test_unknown_channel(self, db_session):
        with pytest.raises(ChannelUnavailable) as exc_info:
            get_usable_channel(db_session, "NOPE")
        assert exc_info.value.error_code == "INVALID_PAYMENT_METHOD"

    def test_disabled_channel(self, db_session, channel):
        set_channel_enabled(db_session, "BRIVA", enabled=False)
        with pytest.raises(ChannelUnavailable):
            get_usable_channel(db_session, "BRIVA")
        assert list_channels(db_session) == []
        assert [c.code for c in list_channels(db_session, include_disabled=True)] == ["BRIVA"]

    def test_set_unknown_channel(self, db_session):
        assert set_channel_enabled(db_session, "NOPE", enabled=True) is None


# ── validate_stored_channels ─────────────────────────────────────────


class TestValidateStored:
    def test_valid_channels_pass(self, db_session, channel):
        assert validate_stored_channels(db_session) == 1

    def test_malformed_channel_fails(self, db_session, channel):
        channel.minimum_fee = 9000
        channel.maximum_fee = 1000
        db_session.commit()
        with pytest.raises(InvalidFeeSchedule):
            validate_stored_channels(db_session)
