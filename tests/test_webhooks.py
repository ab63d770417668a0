"""Tests for webhook signatures, event mapping and application to sessions."""

import json

import pytest

from payment_providers.models import PaymentSession, WebhookAction, WebhookPayload
from payment_providers.signatures import compute_signature, verify_signature
from payment_providers.status import PaymentSessionStatus
from payment_providers.webhooks import (
    REASON_MALFORMED,
    REASON_UNHANDLED,
    apply_webhook_event,
    body_digest,
    decode_webhook_body,
    map_cashfree_event,
    map_razorpay_event,
)


def cashfree_success_body():
    return {
        "type": "PAYMENT_SUCCESS_WEBHOOK",
        "data": {
            "order": {
                "order_id": "order_cart_1_1700000000000",
                "order_amount": 500.0,
                "order_status": "PAID",
            },
            "payment": {
                "cf_payment_id": 885522,
                "payment_method": {"upi": {"upi_id": "buyer@upi"}},
                "payment_time": "2024-01-01T10:00:00+05:30",
            },
        },
    }


def razorpay_body(event, **entity):
    payment = {
        "id": "pay_RZP456",
        "order_id": "order_RZP123",
        "amount": 50000,
        "notes": {"resource_id": "cart_1"},
    }
    payment.update(entity)
    return {"event": event, "payload": {"payment": {"entity": payment}}}


class TestSignatures:
    """Tests for HMAC-SHA256 signing."""

    def test_deterministic(self):
        assert compute_signature("body", "secret") == compute_signature(b"body", "secret")

    def test_hex_digest(self):
        signature = compute_signature("body", "secret")

        assert len(signature) == 64
        int(signature, 16)

    def test_verify_round_trip(self):
        signature = compute_signature('{"event":"payment.captured"}', "secret")

        assert verify_signature('{"event":"payment.captured"}', signature, "secret")

    def test_tampered_body_fails(self):
        signature = compute_signature('{"amount":50000}', "secret")

        assert not verify_signature('{"amount":50001}', signature, "secret")

    def test_wrong_secret_fails(self):
        signature = compute_signature("body", "secret")

        assert not verify_signature("body", signature, "not_the_secret")

    @pytest.mark.parametrize("signature,secret", [(None, "secret"), ("abc", None), ("", "secret"), ("abc", "")])
    def test_missing_signature_or_secret_fails(self, signature, secret):
        assert not verify_signature("body", signature, secret)


class TestDecodeBody:
    """Tests for decode_webhook_body and body_digest."""

    @pytest.mark.parametrize("raw", ['{"type": "X"}', b'{"type": "X"}', {"type": "X"}])
    def test_accepts_text_bytes_and_dict(self, raw):
        assert decode_webhook_body(raw) == {"type": "X"}

    @pytest.mark.parametrize("raw", ["not json", "[1, 2]", b"\xff\xfe", 12])
    def test_rejects_non_objects(self, raw):
        with pytest.raises(ValueError):
            decode_webhook_body(raw)

    def test_digest_is_stable_across_forms(self):
        body = '{"type": "X"}'

        assert body_digest(body) == body_digest(body.encode("utf-8"))
        assert body_digest({"b": 1, "a": 2}) == body_digest({"a": 2, "b": 1})
        assert body_digest("a") != body_digest("b")


class TestCashfreeEvents:
    """Tests for map_cashfree_event."""

    def test_payment_success(self):
        event = map_cashfree_event(cashfree_success_body(), event_id="evt_1")

        assert event.action == WebhookAction.AUTHORIZED
        assert event.gateway == "cashfree"
        assert event.event_id == "evt_1"
        assert event.order_id == "order_cart_1_1700000000000"
        assert event.payload["transaction_id"] == 885522
        assert event.payload["order_amount"] == 500.0
        assert event.payload["payment_time"] == "2024-01-01T10:00:00+05:30"

    def test_transaction_id_from_order_section(self):
        body = {
            "type": "PAYMENT_SUCCESS_WEBHOOK",
            "data": {"order": {"order_id": "o1", "cf_payment_id": 42}},
        }

        assert map_cashfree_event(body).payload["transaction_id"] == 42

    def test_payment_failed(self):
        body = {
            "type": "PAYMENT_FAILED_WEBHOOK",
            "data": {"order": {"order_id": "o1"}, "payment": {"payment_message": "Insufficient funds"}},
        }

        event = map_cashfree_event(body)

        assert event.action == WebhookAction.FAILED
        assert event.payload["error_message"] == "Insufficient funds"

    def test_user_dropped(self):
        body = {"type": "PAYMENT_USER_DROPPED_WEBHOOK", "data": {"order": {"order_id": "o1"}}}

        assert map_cashfree_event(body).action == WebhookAction.CANCELED

    def test_unknown_type(self):
        event = map_cashfree_event({"type": "REFUND_STATUS_WEBHOOK", "data": {}})

        assert event.action == WebhookAction.NOT_SUPPORTED
        assert event.reason == REASON_UNHANDLED
        assert not event.is_supported

    def test_missing_sections_do_not_raise(self):
        event = map_cashfree_event({"type": "PAYMENT_SUCCESS_WEBHOOK", "data": "oops"})

        assert event.action == WebhookAction.AUTHORIZED
        assert event.order_id is None

    @pytest.mark.parametrize("event_type", [123, ["PAYMENT_SUCCESS_WEBHOOK"], {"name": "x"}])
    def test_non_string_type_is_malformed(self, event_type):
        event = map_cashfree_event({"type": event_type, "data": {}}, event_id="abc")

        assert event.action == WebhookAction.NOT_SUPPORTED
        assert event.reason == REASON_MALFORMED
        assert event.event_id == "abc"


class TestRazorpayEvents:
    """Tests for map_razorpay_event."""

    def test_payment_captured(self):
        event = map_razorpay_event(razorpay_body("payment.captured"))

        assert event.action == WebhookAction.CAPTURED
        assert event.payload == {
            "resource_id": "cart_1",
            "order_id": "order_RZP123",
            "transaction_id": "pay_RZP456",
            "amount": 50000,
        }

    def test_payment_authorized(self):
        assert map_razorpay_event(razorpay_body("payment.authorized")).action == WebhookAction.AUTHORIZED

    def test_payment_failed(self):
        event = map_razorpay_event(razorpay_body("payment.failed", error_description="Card declined"))

        assert event.action == WebhookAction.FAILED
        assert event.payload["error_description"] == "Card declined"

    def test_other_events_not_supported(self):
        event = map_razorpay_event(razorpay_body("refund.processed"))

        assert event.action == WebhookAction.NOT_SUPPORTED
        assert event.reason == REASON_UNHANDLED

    def test_non_string_event_is_malformed(self):
        event = map_razorpay_event(razorpay_body(["payment.captured"]))

        assert event.action == WebhookAction.NOT_SUPPORTED
        assert event.reason == REASON_MALFORMED


class TestApplyWebhookEvent:
    """Tests for apply_webhook_event."""

    def _session(self, status=PaymentSessionStatus.PENDING):
        return PaymentSession(
            provider_order_id="order_cart_1_1700000000000",
            amount=50000,
            currency="INR",
            canonical_status=status,
        )

    def test_authorized_twice_is_idempotent(self):
        session = self._session()
        event = map_cashfree_event(cashfree_success_body())

        assert apply_webhook_event(session, event) is True
        assert session.canonical_status == PaymentSessionStatus.AUTHORIZED

        assert apply_webhook_event(session, event) is False
        assert session.canonical_status == PaymentSessionStatus.AUTHORIZED

    def test_late_authorized_does_not_undo_capture(self):
        session = self._session(PaymentSessionStatus.CAPTURED)

        changed = apply_webhook_event(session, map_razorpay_event(razorpay_body("payment.authorized")))

        assert changed is False
        assert session.canonical_status == PaymentSessionStatus.CAPTURED

    @pytest.mark.parametrize("event", [
        map_razorpay_event(razorpay_body("payment.failed")),
        map_cashfree_event({"type": "PAYMENT_FAILED_WEBHOOK", "data": {"order": {"order_id": "o1"}}}),
    ])
    def test_late_failure_does_not_undo_capture(self, event):
        session = self._session(PaymentSessionStatus.CAPTURED)

        assert apply_webhook_event(session, event) is False
        assert session.canonical_status == PaymentSessionStatus.CAPTURED

    def test_failure_after_authorization_moves_to_error(self):
        session = self._session(PaymentSessionStatus.AUTHORIZED)

        assert apply_webhook_event(session, map_razorpay_event(razorpay_body("payment.failed")))
        assert session.canonical_status == PaymentSessionStatus.ERROR

    def test_failed_moves_to_error(self):
        session = self._session()

        assert apply_webhook_event(session, map_razorpay_event(razorpay_body("payment.failed")))
        assert session.canonical_status == PaymentSessionStatus.ERROR

    def test_not_supported_changes_nothing(self):
        session = self._session()

        assert apply_webhook_event(session, map_cashfree_event({"type": "UNKNOWN"})) is False
        assert session.canonical_status == PaymentSessionStatus.PENDING


class TestWebhookPayload:
    """Tests for WebhookPayload header lookup."""

    def test_header_lookup_is_case_insensitive(self):
        payload = WebhookPayload(raw_data=json.dumps({}), headers={"X-Razorpay-Signature": "abc"})

        assert payload.header("x-razorpay-signature") == "abc"
        assert payload.header("X-RAZORPAY-SIGNATURE") == "abc"
        assert payload.header("x-missing") is None
