"""Tests for gateway status normalization and the canonical state machine."""

import pytest

from payment_providers.signatures import compute_signature
from payment_providers.status import (
    PaymentSessionStatus,
    classify_razorpay_authorization,
    is_cashfree_terminal,
    map_cashfree_order_status,
    map_razorpay_payment_status,
    transition,
)

PENDING = PaymentSessionStatus.PENDING
AUTHORIZED = PaymentSessionStatus.AUTHORIZED
CAPTURED = PaymentSessionStatus.CAPTURED
CANCELED = PaymentSessionStatus.CANCELED
ERROR = PaymentSessionStatus.ERROR


class TestCashfreeMapping:
    """Tests for Cashfree order status mapping."""

    @pytest.mark.parametrize("raw,expected", [
        ("ACTIVE", PENDING),
        ("PAID", AUTHORIZED),
        ("EXPIRED", CANCELED),
        ("USER_DROPPED", CANCELED),
        ("TERMINATED", ERROR),
        ("paid", ERROR),
        (None, ERROR),
    ])
    def test_map_order_status(self, raw, expected):
        assert map_cashfree_order_status(raw) == expected

    def test_mapping_is_pure(self):
        assert map_cashfree_order_status("PAID") == map_cashfree_order_status("PAID")

    @pytest.mark.parametrize("raw,terminal", [
        ("PAID", True),
        ("EXPIRED", True),
        ("USER_DROPPED", True),
        ("ACTIVE", False),
        ("SOMETHING_ELSE", False),
        (None, False),
    ])
    def test_terminal_statuses(self, raw, terminal):
        assert is_cashfree_terminal(raw) is terminal


class TestRazorpayMapping:
    """Tests for Razorpay payment status mapping and checkout classification."""

    @pytest.mark.parametrize("raw,expected", [
        ("created", PENDING),
        ("authorized", AUTHORIZED),
        ("captured", CAPTURED),
        ("refunded", CAPTURED),
        ("failed", ERROR),
        ("mystery", PENDING),
        (None, PENDING),
    ])
    def test_map_payment_status(self, raw, expected):
        assert map_razorpay_payment_status(raw) == expected

    def test_valid_signature_authorizes(self):
        signature = compute_signature("order_1|pay_1", "secret")

        assert classify_razorpay_authorization("order_1", "pay_1", signature, "secret") == AUTHORIZED

    def test_signature_mismatch_is_error(self):
        signature = compute_signature("order_1|pay_1", "other_secret")

        assert classify_razorpay_authorization("order_1", "pay_1", signature, "secret") == ERROR

    def test_signature_over_swapped_ids_is_error(self):
        signature = compute_signature("pay_1|order_1", "secret")

        assert classify_razorpay_authorization("order_1", "pay_1", signature, "secret") == ERROR

    @pytest.mark.parametrize("order_id,payment_id,signature", [
        (None, "pay_1", "sig"),
        ("order_1", None, "sig"),
        ("order_1", "pay_1", None),
        ("", "", ""),
    ])
    def test_missing_credentials_stay_pending(self, order_id, payment_id, signature):
        assert classify_razorpay_authorization(order_id, payment_id, signature, "secret") == PENDING


class TestTransition:
    """Tests for the canonical state machine."""

    @pytest.mark.parametrize("current,target,expected", [
        (PENDING, AUTHORIZED, AUTHORIZED),
        (PENDING, CAPTURED, CAPTURED),
        (AUTHORIZED, CAPTURED, CAPTURED),
        (PENDING, CANCELED, CANCELED),
        (AUTHORIZED, CANCELED, CANCELED),
        (CAPTURED, ERROR, ERROR),
        (PENDING, ERROR, ERROR),
    ])
    def test_forward_moves(self, current, target, expected):
        assert transition(current, target) == expected

    @pytest.mark.parametrize("current,target", [
        (AUTHORIZED, PENDING),
        (CAPTURED, PENDING),
        (CAPTURED, AUTHORIZED),
    ])
    def test_never_moves_backwards(self, current, target):
        assert transition(current, target) == current

    @pytest.mark.parametrize("current", [CANCELED, ERROR])
    @pytest.mark.parametrize("target", list(PaymentSessionStatus))
    def test_canceled_and_error_are_absorbing(self, current, target):
        assert transition(current, target) == current

    @pytest.mark.parametrize("status", list(PaymentSessionStatus))
    def test_reapplying_current_state_is_noop(self, status):
        assert transition(status, status) == status

    def test_accepts_raw_values(self):
        assert transition("pending", "authorized") == AUTHORIZED
