"""HMAC-SHA256 signing helpers used for Razorpay callbacks and webhooks."""

import hashlib
import hmac
from typing import Optional, Union

Body = Union[str, bytes, bytearray]


def _to_bytes(value: Body) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(value)


def compute_signature(body: Body, secret: str) -> str:
    """Hex HMAC-SHA256 of ``body`` keyed with ``secret``."""
    return hmac.new(_to_bytes(secret), _to_bytes(body), hashlib.sha256).hexdigest()


def verify_signature(body: Body, signature: Optional[str], secret: Optional[str]) -> bool:
    """Constant-time check of ``signature`` against the body's HMAC.

    An absent secret or signature never verifies.
    """
    if not secret or not signature:
        return False
    return hmac.compare_digest(compute_signature(body, secret), str(signature))
