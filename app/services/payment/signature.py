"""HMAC-SHA256 signing for gateway requests and callback verification.

Two request canonicalizations exist and must never be interchangeable:

- closed payment: ``merchant_code + merchant_ref + amount``
- open payment:   ``merchant_code + channel_code + merchant_ref``

Callbacks are verified over the raw, unmodified request body.  All of this
runs in the backend only; the private key is never handed to a browser.
"""

from __future__ import annotations

import hashlib
import hmac
from typing import Optional

from app.core.exceptions import SignatureMismatch
from app.core.logging import get_logger

logger = get_logger(__name__)


def _hmac_hex(message: bytes, private_key: str) -> str:
    return hmac.new(private_key.encode("utf-8"), message, hashlib.sha256).hexdigest()


def sign_closed_payment(
    merchant_code: str,
    merchant_ref: str,
    amount: int,
    private_key: str,
) -> str:
    """Signature for a single-use payment of a fixed amount.

    Returns:
        64 lowercase hex characters.
    """
    payload = f"{merchant_code}{merchant_ref}{int(amount)}"
    return _hmac_hex(payload.encode("utf-8"), private_key)


def sign_open_payment(
    merchant_code: str,
    channel_code: str,
    merchant_ref: str,
    private_key: str,
) -> str:
    """Signature for a reusable pay code (no amount, the channel is signed instead)."""
    payload = f"{merchant_code}{channel_code}{merchant_ref}"
    return _hmac_hex(payload.encode("utf-8"), private_key)


def sign_callback_body(raw_body: bytes, private_key: str) -> str:
    """Signature the gateway puts in ``X-Callback-Signature`` for *raw_body*."""
    return _hmac_hex(raw_body, private_key)


def verify_callback(
    raw_body: bytes,
    signature: Optional[str],
    private_key: str,
) -> bool:
    """Constant-time check of a callback signature against the raw body."""
    if not signature or not private_key:
        return False
    expected = sign_callback_body(raw_body, private_key)
    # Headers arrive latin-1 decoded; compare bytes so stray non-ASCII is a mismatch.
    return hmac.compare_digest(
        expected.encode("ascii"), signature.strip().encode("utf-8", "surrogateescape")
    )


class SignatureEngine:
    """Signing bound to one merchant's credentials.

    Constructed from settings and handed to the gateway client and the
    callback handler, so tests can build one with throwaway keys.
    """

    def __init__(self, merchant_code: str, private_key: str) -> None:
        self.merchant_code = merchant_code
        self._private_key = private_key

    def closed_payment(self, merchant_ref: str, amount: int) -> str:
        return sign_closed_payment(
            self.merchant_code, merchant_ref, amount, self._private_key
        )

    def open_payment(self, channel_code: str, merchant_ref: str) -> str:
        return sign_open_payment(
            self.merchant_code, channel_code, merchant_ref, self._private_key
        )

    def callback(self, raw_body: bytes) -> str:
        return sign_callback_body(raw_body, self._private_key)

    def verify_callback(self, raw_body: bytes, signature: Optional[str]) -> bool:
        return verify_callback(raw_body, signature, self._private_key)

    def verify_callback_or_raise(
        self, raw_body: bytes, signature: Optional[str]
    ) -> None:
        """Raise ``SignatureMismatch`` unless *signature* matches *raw_body*."""
        if not signature:
            logger.warning("Callback rejected: missing signature header")
            raise SignatureMismatch("Missing signature")
        if not self.verify_callback(raw_body, signature):
            logger.warning(
                "Callback rejected: signature mismatch (body_size=%d)",
                len(raw_body),
            )
            raise SignatureMismatch()
