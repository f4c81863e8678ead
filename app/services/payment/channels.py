"""Channel registry: the locally stored copy of the gateway's channel list.

The gateway owns names, fees and limits; the local admin owns
``is_enabled`` and ``display_order``, which a sync never overwrites.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.exceptions import ChannelUnavailable, InvalidFeeSchedule
from app.core.logging import get_logger
from app.models.channel import PaymentChannel
from app.services.payment.fees import ChannelFees, to_decimal, validate_channel_fees
from app.services.payment.gateway import GatewayClient
from app.services.payment.store import utcnow

logger = get_logger(__name__)


@dataclass
class SyncResult:
    synced: int = 0
    skipped: int = 0
    deactivated: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def status(self) -> str:
        if not self.errors:
            return "success"
        return "partial" if self.synced else "failed"


def _schedule(raw: Any, name: str) -> tuple[int, Any]:
    raw = raw or {}
    if not isinstance(raw, dict):
        raise InvalidFeeSchedule(f"{name} must be an object, got {raw!r}")
    return (
        int(to_decimal(raw.get("flat"), f"{name}.flat")),
        to_decimal(raw.get("percent"), f"{name}.percent"),
    )


def _optional_int(value: Any, name: str) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(to_decimal(value, name))


def _channel_fields(raw: dict[str, Any]) -> dict[str, Any]:
    """Gateway channel entry -> PaymentChannel column values."""
    merchant_flat, merchant_percent = _schedule(raw.get("fee_merchant"), "fee_merchant")
    customer_flat, customer_percent = _schedule(raw.get("fee_customer"), "fee_customer")
    return {
        "name": raw.get("name") or raw["code"],
        "group_name": raw.get("group") or raw.get("group_name"),
        "fee_merchant_flat": merchant_flat,
        "fee_merchant_percent": merchant_percent,
        "fee_customer_flat": customer_flat,
        "fee_customer_percent": customer_percent,
        "minimum_fee": _optional_int(raw.get("minimum_fee"), "minimum_fee"),
        "maximum_fee": _optional_int(raw.get("maximum_fee"), "maximum_fee"),
        "minimum_amount": _optional_int(raw.get("minimum_amount"), "minimum_amount"),
        "maximum_amount": _optional_int(raw.get("maximum_amount"), "maximum_amount"),
        "icon_url": raw.get("icon_url"),
        "is_active": bool(raw.get("active", raw.get("is_active", True))),
    }


def sync_channels(db: Session, client: GatewayClient) -> SyncResult:
    """Fetch the gateway's channel list and upsert every valid entry.

    Channels with a malformed fee schedule are skipped and reported, never
    stored.  Stored channels missing from the gateway's list are marked
    inactive.
    """
    result = SyncResult()
    now = utcnow()
    seen: set[str] = set()

    for raw in client.fetch_channels():
        code = raw.get("code") if isinstance(raw, dict) else None
        if not code:
            result.skipped += 1
            result.errors.append(f"Channel entry without code: {raw!r}")
            continue
        try:
            fields = _channel_fields(raw)
            validate_channel_fees(ChannelFees.from_channel(PaymentChannel(code=code, **fields)))
        except InvalidFeeSchedule as exc:
            logger.warning("Skipping channel %s: %s", code, exc.message)
            result.skipped += 1
            result.errors.append(f"{code}: {exc.message}")
            continue

        seen.add(code)
        channel = db.get(PaymentChannel, code)
        if channel is None:
            channel = PaymentChannel(code=code, is_enabled=True, display_order=0)
            db.add(channel)
        for name, value in fields.items():
            setattr(channel, name, value)
        channel.last_synced_at = now
        result.synced += 1

    if seen:
        for channel in db.execute(select(PaymentChannel)).scalars():
            if channel.code not in seen and channel.is_active:
                channel.is_active = False
                result.deactivated += 1

    db.commit()
    logger.info(
        "Channel sync %s: synced=%d skipped=%d deactivated=%d",
        result.status,
        result.synced,
        result.skipped,
        result.deactivated,
    )
    return result


def list_channels(db: Session, include_disabled: bool = False) -> list[PaymentChannel]:
    query = select(PaymentChannel).order_by(
        PaymentChannel.display_order, PaymentChannel.name
    )
    if not include_disabled:
        query = query.where(
            PaymentChannel.is_active.is_(True), PaymentChannel.is_enabled.is_(True)
        )
    return list(db.execute(query).scalars().all())


def get_usable_channel(db: Session, code: str) -> PaymentChannel:
    """The channel for *code* if it can take payments right now.

    Raises:
        ChannelUnavailable: unknown, gateway-inactive or locally disabled.
    """
    channel = db.get(PaymentChannel, code)
    if channel is None:
        raise ChannelUnavailable(f"Unknown payment channel {code}")
    if not channel.is_active or not channel.is_enabled:
        raise ChannelUnavailable(f"Payment channel {code} is disabled")
    return channel


def set_channel_enabled(
    db: Session,
    code: str,
    enabled: Optional[bool] = None,
    display_order: Optional[int] = None,
) -> Optional[PaymentChannel]:
    """Apply admin switches.  Returns None when the channel does not exist."""
    channel = db.get(PaymentChannel, code)
    if channel is None:
        return None
    if enabled is not None:
        channel.is_enabled = enabled
    if display_order is not None:
        channel.display_order = display_order
    db.commit()
    db.refresh(channel)
    logger.info(
        "Channel %s updated: enabled=%s order=%d",
        code,
        channel.is_enabled,
        channel.display_order,
    )
    return channel


def validate_stored_channels(db: Session) -> int:
    """Check every stored fee schedule; run once at startup.

    Raises:
        InvalidFeeSchedule: the first malformed channel found.
    """
    channels = db.execute(select(PaymentChannel)).scalars().all()
    for channel in channels:
        try:
            validate_channel_fees(ChannelFees.from_channel(channel))
        except InvalidFeeSchedule as exc:
            logger.error("Stored channel %s is invalid: %s", channel.code, exc.message)
            raise
    logger.info("Validated %d stored payment channels", len(channels))
    return len(channels)
