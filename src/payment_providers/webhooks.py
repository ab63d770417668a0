"""Webhook body decoding, event mapping, and application to sessions.

The mappers are pure: they take an already authenticated body and return a
canonical ``WebhookEvent``. Signature checks stay in the connectors, which
know the header names and secrets.
"""

import hashlib
import json
import logging
from typing import Optional, Dict, Any, Union

from .models import PaymentSession, WebhookAction, WebhookEvent
from .status import PaymentSessionStatus, transition

logger = logging.getLogger(__name__)

RawBody = Union[str, bytes, bytearray, Dict[str, Any]]

# not_supported reasons
REASON_TEST_EVENT = "test_event"
REASON_MALFORMED = "malformed"
REASON_UNHANDLED = "unhandled_event"
REASON_MISSING_SIGNATURE = "missing_signature"
REASON_SIGNATURE_MISMATCH = "signature_mismatch"

ACTION_STATUS = {
    WebhookAction.AUTHORIZED: PaymentSessionStatus.AUTHORIZED,
    WebhookAction.CAPTURED: PaymentSessionStatus.CAPTURED,
    WebhookAction.CANCELED: PaymentSessionStatus.CANCELED,
    WebhookAction.FAILED: PaymentSessionStatus.ERROR,
}


def decode_webhook_body(raw: RawBody) -> Dict[str, Any]:
    """Parse a webhook body delivered as text, bytes, or a parsed dict.

    Raises:
        ValueError: If the body is not a JSON object.
    """
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, (bytes, bytearray)):
        raw = bytes(raw).decode("utf-8")
    if not isinstance(raw, str):
        raise ValueError(f"Unsupported webhook body type: {type(raw).__name__}")
    body = json.loads(raw)
    if not isinstance(body, dict):
        raise ValueError("Webhook body is not a JSON object")
    return body


def body_digest(raw: RawBody) -> str:
    """Stable identifier for a delivery that carries no event id header."""
    if isinstance(raw, dict):
        raw = json.dumps(raw, sort_keys=True, default=str)
    if isinstance(raw, str):
        raw = raw.encode("utf-8")
    return hashlib.sha256(bytes(raw)).hexdigest()


def not_supported(
    gateway: str,
    reason: str,
    event_type: Optional[str] = None,
    payload: Optional[Dict[str, Any]] = None,
    event_id: Optional[str] = None,
) -> WebhookEvent:
    return WebhookEvent(
        gateway=gateway,
        event_type=event_type,
        action=WebhookAction.NOT_SUPPORTED,
        payload=payload or {},
        event_id=event_id,
        reason=reason,
    )


def _section(body: Dict[str, Any], *path: str) -> Dict[str, Any]:
    """Walk nested dicts, returning {} at the first missing or non-dict level."""
    current: Any = body
    for key in path:
        if not isinstance(current, dict):
            return {}
        current = current.get(key)
    return current if isinstance(current, dict) else {}


def map_cashfree_event(body: Dict[str, Any], event_id: Optional[str] = None) -> WebhookEvent:
    """Map a Cashfree webhook body to a canonical event.

    Cashfree puts order fields under ``data.order`` and payment fields under
    ``data.payment``; older payloads carry ``cf_payment_id`` on the order.
    """
    gateway = "cashfree"
    event_type = body.get("type")
    if event_type is not None and not isinstance(event_type, str):
        return not_supported(gateway, REASON_MALFORMED, event_id=event_id)
    order = _section(body, "data", "order")
    payment = _section(body, "data", "payment")

    if event_type == "PAYMENT_SUCCESS_WEBHOOK":
        return WebhookEvent(
            gateway=gateway,
            event_type=event_type,
            action=WebhookAction.AUTHORIZED,
            event_id=event_id,
            payload={
                "cf_order_id": order.get("cf_order_id"),
                "order_id": order.get("order_id"),
                "order_status": order.get("order_status"),
                "order_amount": order.get("order_amount"),
                "transaction_id": payment.get("cf_payment_id") or order.get("cf_payment_id"),
                "payment_method": payment.get("payment_method") or order.get("payment_method"),
                "payment_time": payment.get("payment_time") or order.get("payment_time"),
            },
        )
    if event_type == "PAYMENT_FAILED_WEBHOOK":
        return WebhookEvent(
            gateway=gateway,
            event_type=event_type,
            action=WebhookAction.FAILED,
            event_id=event_id,
            payload={
                "cf_order_id": order.get("cf_order_id"),
                "order_id": order.get("order_id"),
                "error_message": payment.get("payment_message") or order.get("error_message"),
            },
        )
    if event_type == "PAYMENT_USER_DROPPED_WEBHOOK":
        return WebhookEvent(
            gateway=gateway,
            event_type=event_type,
            action=WebhookAction.CANCELED,
            event_id=event_id,
            payload={
                "cf_order_id": order.get("cf_order_id"),
                "order_id": order.get("order_id"),
            },
        )
    return not_supported(gateway, REASON_UNHANDLED, event_type=event_type, payload=body, event_id=event_id)


def map_razorpay_event(body: Dict[str, Any], event_id: Optional[str] = None) -> WebhookEvent:
    """Map a verified Razorpay webhook body to a canonical event."""
    gateway = "razorpay"
    event_type = body.get("event")
    if event_type is not None and not isinstance(event_type, str):
        return not_supported(gateway, REASON_MALFORMED, event_id=event_id)
    entity = _section(body, "payload", "payment", "entity")
    notes = entity.get("notes") if isinstance(entity.get("notes"), dict) else {}
    base = {
        "resource_id": notes.get("resource_id"),
        "order_id": entity.get("order_id"),
        "transaction_id": entity.get("id"),
    }

    if event_type == "payment.authorized":
        return WebhookEvent(
            gateway=gateway, event_type=event_type, action=WebhookAction.AUTHORIZED,
            event_id=event_id, payload={**base, "amount": entity.get("amount")},
        )
    if event_type == "payment.captured":
        return WebhookEvent(
            gateway=gateway, event_type=event_type, action=WebhookAction.CAPTURED,
            event_id=event_id, payload={**base, "amount": entity.get("amount")},
        )
    if event_type == "payment.failed":
        return WebhookEvent(
            gateway=gateway, event_type=event_type, action=WebhookAction.FAILED,
            event_id=event_id, payload={**base, "error_description": entity.get("error_description")},
        )
    return not_supported(gateway, REASON_UNHANDLED, event_type=event_type, event_id=event_id)


def apply_webhook_event(session: PaymentSession, event: WebhookEvent) -> bool:
    """Move ``session`` to the status ``event`` implies.

    A failure reported for a session that is already captured refers to an
    earlier attempt on the same order and is ignored.

    Returns:
        True if the canonical status changed. Re-applying an event that was
        already applied, or one the state machine rejects, returns False.
    """
    target = ACTION_STATUS.get(event.action)
    if target is None:
        return False
    if event.action == WebhookAction.FAILED and session.canonical_status == PaymentSessionStatus.CAPTURED:
        logger.info(
            f"Ignoring {event.event_type} for captured session {session.provider_order_id}"
        )
        return False
    new_status = transition(session.canonical_status, target)
    if new_status == session.canonical_status:
        logger.debug(
            f"Webhook {event.event_type} leaves session {session.provider_order_id} at {new_status.value}"
        )
        return False
    session.canonical_status = new_status
    return True
