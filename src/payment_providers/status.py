"""Canonical payment session states and gateway status normalization."""

import enum
from typing import Optional

from .signatures import verify_signature


class PaymentSessionStatus(str, enum.Enum):
    """Canonical payment session statuses."""
    PENDING = "pending"
    AUTHORIZED = "authorized"
    CAPTURED = "captured"
    CANCELED = "canceled"
    ERROR = "error"


# Position on the happy path; CANCELED and ERROR sit outside it.
_PROGRESS = {
    PaymentSessionStatus.PENDING: 0,
    PaymentSessionStatus.AUTHORIZED: 1,
    PaymentSessionStatus.CAPTURED: 2,
}

ABSORBING_STATUSES = frozenset([PaymentSessionStatus.CANCELED, PaymentSessionStatus.ERROR])


def transition(
    current: PaymentSessionStatus,
    target: PaymentSessionStatus,
) -> PaymentSessionStatus:
    """Return the status a session ends up in when ``target`` is observed.

    PENDING -> AUTHORIZED -> CAPTURED only moves forward; any state may move
    to CANCELED or ERROR, and both of those are final. Observing the current
    state again, or a state behind it, leaves the session where it is.
    """
    current = PaymentSessionStatus(current)
    target = PaymentSessionStatus(target)
    if current in ABSORBING_STATUSES:
        return current
    if target in ABSORBING_STATUSES:
        return target
    if _PROGRESS[target] < _PROGRESS[current]:
        return current
    return target


# Cashfree order statuses
CASHFREE_ACTIVE = "ACTIVE"
CASHFREE_PAID = "PAID"
CASHFREE_EXPIRED = "EXPIRED"
CASHFREE_USER_DROPPED = "USER_DROPPED"

CASHFREE_TERMINAL_STATUSES = frozenset([CASHFREE_PAID, CASHFREE_EXPIRED, CASHFREE_USER_DROPPED])

CASHFREE_STATUS_MAP = {
    CASHFREE_ACTIVE: PaymentSessionStatus.PENDING,
    CASHFREE_PAID: PaymentSessionStatus.AUTHORIZED,
    CASHFREE_EXPIRED: PaymentSessionStatus.CANCELED,
    CASHFREE_USER_DROPPED: PaymentSessionStatus.CANCELED,
}


def map_cashfree_order_status(order_status: Optional[str]) -> PaymentSessionStatus:
    """Map a Cashfree ``order_status`` to the canonical status.

    Anything outside the known vocabulary is an ERROR.
    """
    return CASHFREE_STATUS_MAP.get(order_status, PaymentSessionStatus.ERROR)


def is_cashfree_terminal(order_status: Optional[str]) -> bool:
    return order_status in CASHFREE_TERMINAL_STATUSES


RAZORPAY_STATUS_MAP = {
    "created": PaymentSessionStatus.PENDING,
    "authorized": PaymentSessionStatus.AUTHORIZED,
    "captured": PaymentSessionStatus.CAPTURED,
    "refunded": PaymentSessionStatus.CAPTURED,
    "failed": PaymentSessionStatus.ERROR,
}


def map_razorpay_payment_status(payment_status: Optional[str]) -> PaymentSessionStatus:
    """Map a Razorpay payment ``status``; unknown values are still pending."""
    return RAZORPAY_STATUS_MAP.get(payment_status, PaymentSessionStatus.PENDING)


def classify_razorpay_authorization(
    order_id: Optional[str],
    payment_id: Optional[str],
    signature: Optional[str],
    key_secret: str,
) -> PaymentSessionStatus:
    """Classify the checkout callback Razorpay hands back to the storefront.

    Razorpay signs ``"{order_id}|{payment_id}"`` with the API key secret.

    Returns:
        PENDING while any credential is missing, AUTHORIZED when the
        signature matches, ERROR otherwise.
    """
    if not order_id or not payment_id or not signature:
        return PaymentSessionStatus.PENDING
    if verify_signature(f"{order_id}|{payment_id}", signature, key_secret):
        return PaymentSessionStatus.AUTHORIZED
    return PaymentSessionStatus.ERROR
