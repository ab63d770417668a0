"""Tests for the connector contract, registry and canonical models."""

import logging
import re
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from payment_providers.connectors import (
    CONNECTOR_CLASSES,
    CashfreeConnector,
    ConnectorBase,
    RazorpayConnector,
    get_connector,
    reset_connectors,
)
from payment_providers.connectors.base import generate_order_id
from payment_providers.errors import (
    CaptureError,
    FatalOperationError,
    PaymentProviderError,
    RefundError,
    WebhookAuthenticationError,
)
from payment_providers.models import (
    InitiatePaymentRequest,
    PaymentSession,
    WebhookAction,
    WebhookEvent,
)
from payment_providers.status import PaymentSessionStatus


class TestGenerateOrderId:
    """Tests for gateway order id generation."""

    def test_uses_seed(self):
        assert re.fullmatch(r"order_cart_1_\d{13}", generate_order_id("cart_1"))

    def test_random_seed(self):
        assert re.fullmatch(r"order_sess_[0-9a-f]{8}_\d+", generate_order_id(None))

    def test_custom_prefix(self):
        assert generate_order_id("x", prefix="pc").startswith("pc_x_")

    def test_random_seeds_differ(self):
        assert generate_order_id(None) != generate_order_id(None)


class TestConnectorBase:
    """Tests for the ConnectorBase interface."""

    def test_cannot_instantiate_abstract(self):
        with pytest.raises(TypeError):
            ConnectorBase()

    def test_identifiers(self):
        assert CashfreeConnector.identifier == "cashfree"
        assert RazorpayConnector.identifier == "razorpay"

    def test_default_merge_webhook_payload(self, cashfree_options):
        connector = CashfreeConnector(options=cashfree_options)
        session = PaymentSession(
            provider_order_id="o1", amount=100, currency="INR", raw_payload={"order_id": "o1"}
        )
        event = WebhookEvent(
            gateway="cashfree",
            action=WebhookAction.AUTHORIZED,
            payload={"order_id": "other", "transaction_id": 12, "payment_time": None},
        )

        connector.merge_webhook_payload(session, event)

        assert session.raw_payload == {"order_id": "o1", "transaction_id": 12}

    def test_injected_logger(self, cashfree_options):
        logger = logging.getLogger("host.payments")
        connector = CashfreeConnector(options=cashfree_options, logger=logger)

        assert connector.logger is logger


class TestRegistry:
    """Tests for get_connector."""

    def setup_method(self):
        reset_connectors()

    def teardown_method(self):
        reset_connectors()

    def test_registered_providers(self):
        assert set(CONNECTOR_CLASSES) == {"cashfree", "razorpay"}

    def test_returns_shared_instance(self):
        first = get_connector("cashfree")

        assert isinstance(first, CashfreeConnector)
        assert get_connector("cashfree") is first

    def test_razorpay_from_env(self):
        with patch("razorpay.Client"):
            connector = get_connector("razorpay")

        assert connector.options.key_id == "rzp_test_key"
        assert connector.options.webhook_secret == "rzp_webhook_secret"

    def test_unknown_provider(self):
        with pytest.raises(KeyError):
            get_connector("paypal")


class TestPaymentSessionModel:
    """Tests for PaymentSession invariants."""

    def test_provider_order_id_is_immutable(self):
        session = PaymentSession(provider_order_id="order_1", amount=100, currency="INR")

        with pytest.raises(ValueError):
            session.provider_order_id = "order_2"

    def test_provider_order_id_can_be_set_once(self):
        session = PaymentSession(amount=100, currency="INR")

        session.provider_order_id = "order_1"
        session.provider_order_id = "order_1"

        assert session.provider_order_id == "order_1"

    def test_defaults(self):
        session = PaymentSession(amount=100, currency="inr")

        assert session.canonical_status == PaymentSessionStatus.PENDING
        assert session.currency == "INR"
        assert session.created_at.tzinfo is not None

    @pytest.mark.parametrize("amount", [10.5, "100", -1])
    def test_amount_must_be_non_negative_int(self, amount):
        with pytest.raises(ValidationError):
            PaymentSession(amount=amount, currency="INR")


class TestInitiatePaymentRequest:
    def test_currency_upper_cased(self):
        assert InitiatePaymentRequest(currency="inr", amount=1).currency == "INR"

    @pytest.mark.parametrize("currency", ["IN", "INRS"])
    def test_currency_length(self, currency):
        with pytest.raises(ValidationError):
            InitiatePaymentRequest(currency=currency, amount=1)

    def test_float_amount_rejected(self):
        with pytest.raises(ValidationError):
            InitiatePaymentRequest(currency="INR", amount=500.0)


class TestErrors:
    """Tests for the error hierarchy."""

    def test_fatal_errors(self):
        assert issubclass(CaptureError, FatalOperationError)
        assert issubclass(RefundError, FatalOperationError)
        assert issubclass(FatalOperationError, PaymentProviderError)

    def test_error_fields(self):
        error = RefundError("Refund failed", provider="cashfree", order_id="o1", gateway_response={"code": 1})

        assert str(error) == "Refund failed"
        assert error.message == "Refund failed"
        assert error.provider == "cashfree"
        assert error.order_id == "o1"
        assert error.gateway_response == {"code": 1}

    def test_webhook_error_reason(self):
        error = WebhookAuthenticationError("bad", reason="signature_mismatch", provider="razorpay")

        assert error.reason == "signature_mismatch"
        assert error.provider == "razorpay"
