"""Shared test fixtures and configuration."""

import json
import os
import pytest
from typing import Any, Callable, Dict, List
from unittest.mock import MagicMock

import httpx

# Set up test environment variables before importing modules
os.environ.setdefault("CASHFREE_API_KEY", "cf_test_app_id")
os.environ.setdefault("CASHFREE_SECRET_KEY", "cf_test_secret")
os.environ.setdefault("RAZORPAY_KEY_ID", "rzp_test_key")
os.environ.setdefault("RAZORPAY_KEY_SECRET", "rzp_test_secret")
os.environ.setdefault("RAZORPAY_WEBHOOK_SECRET", "rzp_webhook_secret")
os.environ.setdefault("API_KEY", "test_api_key_12345")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from payment_providers.config import CashfreeOptions, RazorpayOptions
from payment_providers.connectors import CashfreeConnector, RazorpayConnector


class CashfreeStub:
    """Scripted Cashfree API behind an httpx.MockTransport.

    ``order_statuses`` is consumed one entry per GET /orders/{id}; the last
    entry repeats. An entry may be an exception instance to raise instead.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.order_statuses: List[Any] = ["ACTIVE"]
        self.create_response: Dict[str, Any] = {}
        self.create_status_code = 200
        self.refund_response: Dict[str, Any] = {}
        self.refund_status_code = 200

    def json_body(self, index: int = -1) -> Dict[str, Any]:
        return json.loads(self.requests[index].content)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if request.method == "POST" and path.endswith("/orders"):
            body = json.loads(request.content)
            payload = {
                "order_id": body["order_id"],
                "cf_order_id": 2149460581,
                "payment_session_id": "session_abc",
                "order_status": "ACTIVE",
                "payment_link": "https://payments-test.cashfree.com/order/#session_abc",
            }
            payload.update(self.create_response)
            return httpx.Response(self.create_status_code, json=payload)
        if request.method == "POST" and path.endswith("/refunds"):
            body = json.loads(request.content)
            payload = {
                "refund_id": body["refund_id"],
                "cf_refund_id": 5550001,
                "refund_status": "PENDING",
                "refund_amount": body["refund_amount"],
            }
            payload.update(self.refund_response)
            return httpx.Response(self.refund_status_code, json=payload)
        if request.method == "GET" and "/orders/" in path:
            entry = self.order_statuses.pop(0) if len(self.order_statuses) > 1 else self.order_statuses[0]
            if isinstance(entry, Exception):
                raise entry
            return httpx.Response(200, json={"order_id": path.rsplit("/", 1)[-1], "order_status": entry})
        return httpx.Response(404, json={"message": "not found"})


@pytest.fixture
def cashfree_options() -> CashfreeOptions:
    return CashfreeOptions(
        api_key="cf_test_app_id",
        secret_key="cf_test_secret",
        poll_attempts=5,
        poll_interval=0,
    )


@pytest.fixture
def cashfree_stub() -> CashfreeStub:
    return CashfreeStub()


@pytest.fixture
async def cashfree_connector(cashfree_options, cashfree_stub):
    """Cashfree connector talking to the scripted stub."""
    async with httpx.AsyncClient(transport=httpx.MockTransport(cashfree_stub)) as client:
        yield CashfreeConnector(options=cashfree_options, http_client=client)


@pytest.fixture
def razorpay_options() -> RazorpayOptions:
    return RazorpayOptions(
        key_id="rzp_test_key",
        key_secret="rzp_test_secret",
        webhook_secret="rzp_webhook_secret",
    )


@pytest.fixture
def razorpay_client() -> MagicMock:
    """Mock of razorpay.Client with the resources the connector uses."""
    client = MagicMock()
    client.order.create.return_value = {
        "id": "order_RZP123",
        "amount": 50000,
        "currency": "INR",
        "receipt": "cart_1",
        "notes": {"resource_id": "cart_1"},
        "status": "created",
    }
    client.payment.fetch.return_value = {"id": "pay_RZP456", "status": "captured"}
    client.payment.capture.return_value = {"id": "pay_RZP456", "status": "captured"}
    client.payment.refund.return_value = {"id": "rfnd_RZP789", "status": "processed", "amount": 20000}
    return client


@pytest.fixture
def razorpay_connector(razorpay_options, razorpay_client) -> RazorpayConnector:
    return RazorpayConnector(options=razorpay_options, client=razorpay_client)


@pytest.fixture
def nest() -> Callable[[Dict[str, Any], int], Dict[str, Any]]:
    """Wrap a payload in ``levels`` layers of {"data": ...}."""
    def _nest(payload: Dict[str, Any], levels: int) -> Dict[str, Any]:
        for _ in range(levels):
            payload = {"data": payload}
        return payload
    return _nest


# Database fixtures
@pytest.fixture
async def db_engine():
    """Create an in-memory SQLite database for testing."""
    from payment_providers.database import Base, create_async_engine

    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(db_engine):
    """Create a database session for testing."""
    from payment_providers.database import get_async_session_factory

    session_factory = get_async_session_factory(db_engine)
    async with session_factory() as session:
        yield session
