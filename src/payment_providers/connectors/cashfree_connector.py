"""Cashfree Payment Gateway connector over the PG REST API."""

import asyncio
from contextlib import asynccontextmanager
from typing import Optional, Dict, Any, AsyncIterator

import httpx

from ..config import CashfreeOptions
from ..errors import InitiationError, RefundError, TransientNetworkError
from ..models import (
    AuthorizationResult,
    CustomerDetails,
    InitiatePaymentRequest,
    PaymentSession,
    PollOutcome,
    RefundRequest,
    RefundResult,
    StatusCheck,
    WebhookEvent,
    WebhookPayload,
)
from ..money import to_major_units_number
from ..status import (
    CASHFREE_ACTIVE,
    PaymentSessionStatus,
    is_cashfree_terminal,
    map_cashfree_order_status,
    transition,
)
from ..webhooks import (
    REASON_MALFORMED,
    REASON_TEST_EVENT,
    body_digest,
    decode_webhook_body,
    map_cashfree_event,
    not_supported,
)
from .base import ConnectorBase, epoch_millis, generate_order_id, random_seed

# Placeholder contact data for guest checkouts. Cashfree rejects orders
# without a phone number; these values need product sign-off before use
# against a live merchant account.
GUEST_CUSTOMER_PREFIX = "guest_"
GUEST_PHONE = "9999999999"
GUEST_EMAIL = "test@example.com"

DEFAULT_REFUND_NOTE = "Customer refund request"


class CashfreeConnector(ConnectorBase):
    """
    Cashfree connector using the PG orders API. Checkout happens on the
    Cashfree-hosted page, so authorization is a status lookup: the order is
    polled a bounded number of times and the webhook remains the source of
    truth for late settlement.
    """

    identifier = "cashfree"

    def __init__(
        self,
        options: Optional[CashfreeOptions] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        logger=None,
    ):
        super().__init__(logger)
        self.options = options or CashfreeOptions.from_env()
        self._http_client = http_client

    def _headers(self) -> Dict[str, str]:
        return {
            "x-client-id": self.options.api_key,
            "x-client-secret": self.options.secret_key,
            "x-api-version": self.options.api_version,
            "Content-Type": "application/json",
        }

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
            return
        async with httpx.AsyncClient(timeout=self.options.request_timeout) as client:
            yield client

    async def _request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Call the Cashfree API and return the decoded JSON object.

        Raises:
            TransientNetworkError: On transport errors, non-2xx responses,
                or a body that is not a JSON object.
        """
        url = f"{self.options.base_url}{path}"
        try:
            async with self._client() as client:
                response = await client.request(method, url, json=payload, headers=self._headers())
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            body = _error_body(e.response)
            message = body.get("message") or f"HTTP {e.response.status_code}"
            raise TransientNetworkError(message, provider=self.identifier, gateway_response=body) from e
        except httpx.HTTPError as e:
            raise TransientNetworkError(str(e) or type(e).__name__, provider=self.identifier) from e
        except ValueError as e:
            raise TransientNetworkError(f"Invalid JSON from Cashfree: {e}", provider=self.identifier) from e
        if not isinstance(data, dict):
            raise TransientNetworkError("Unexpected Cashfree response shape", provider=self.identifier)
        return data

    def _customer_details(self, customer: Optional[CustomerDetails], seed: str) -> Dict[str, Any]:
        customer = customer or CustomerDetails()
        details = {
            "customer_id": customer.id or f"{GUEST_CUSTOMER_PREFIX}{seed}",
            "customer_phone": customer.phone or GUEST_PHONE,
            "customer_email": customer.email or GUEST_EMAIL,
        }
        missing = [name for name in ("id", "phone", "email") if not getattr(customer, name)]
        if missing:
            self.logger.warning(
                f"Using placeholder customer {', '.join(missing)} for Cashfree order (seed {seed})"
            )
        name = " ".join(part for part in (customer.first_name, customer.last_name) if part)
        if name:
            details["customer_name"] = name
        return details

    def _return_url(self, request: InitiatePaymentRequest) -> str:
        if request.return_url:
            return request.return_url
        # {order_id} is substituted by Cashfree on redirect
        return f"{self.options.storefront_url}/checkout?step=review&payment_id={{order_id}}"

    async def initiate(self, request: InitiatePaymentRequest) -> PaymentSession:
        seed = request.resource_id or random_seed()
        order_id = generate_order_id(seed)
        payload = {
            "order_id": order_id,
            "order_amount": to_major_units_number(request.amount),
            "order_currency": request.currency,
            "customer_details": self._customer_details(request.customer, seed),
            "order_meta": {"return_url": self._return_url(request)},
        }
        if request.metadata:
            payload["order_tags"] = {str(k): str(v) for k, v in request.metadata.items()}

        self.logger.info(f"Creating Cashfree order {order_id}")
        try:
            data = await self._request("POST", "/orders", payload)
        except TransientNetworkError as e:
            self.logger.error(f"Cashfree order creation failed for {order_id}: {e.message}")
            raise InitiationError(
                f"Cashfree order creation failed: {e.message}",
                provider=self.identifier,
                order_id=order_id,
                gateway_response=e.gateway_response,
            ) from e

        order_status = data.get("order_status")
        raw_payload = {
            "order_id": data.get("order_id") or order_id,
            "cf_order_id": data.get("cf_order_id"),
            "payment_session_id": data.get("payment_session_id"),
            "order_status": order_status,
            "payment_link": data.get("payment_link"),
        }
        status = map_cashfree_order_status(order_status) if order_status else PaymentSessionStatus.PENDING
        self.logger.info(f"Cashfree order {raw_payload['order_id']} created with status {order_status}")
        return PaymentSession(
            provider_order_id=raw_payload["order_id"],
            amount=request.amount,
            currency=request.currency,
            canonical_status=status,
            raw_payload=raw_payload,
        )

    async def authorize(
        self,
        session: PaymentSession,
        context: Optional[Dict[str, Any]] = None,
    ) -> AuthorizationResult:
        session = session.sanitized(self.order_id_key)
        if not session.provider_order_id:
            self.logger.error("No order_id found in payment session data")
            session.canonical_status = PaymentSessionStatus.ERROR
            return AuthorizationResult(status=session.canonical_status, session=session)

        check = await self.get_status(session)
        if check.raw_status:
            session.raw_payload["order_status"] = check.raw_status
        session.canonical_status = transition(session.canonical_status, check.status)
        return AuthorizationResult(status=session.canonical_status, session=session)

    async def get_status(self, session: PaymentSession) -> StatusCheck:
        """Poll the order until it settles or the attempt ceiling is hit.

        Failed polls are logged and do not end the loop. An order still
        ACTIVE after the last attempt is PENDING, not ERROR.
        """
        session = session.sanitized(self.order_id_key)
        order_id = session.provider_order_id
        if not order_id:
            self.logger.error("No order_id found in payment session data")
            return StatusCheck(status=PaymentSessionStatus.ERROR, outcome=PollOutcome.MISSING_ORDER_ID)

        progress: Dict[str, Any] = {"attempts": 0, "raw_status": None}
        if self.options.poll_timeout is None:
            return await self._poll(order_id, progress)
        try:
            return await asyncio.wait_for(self._poll(order_id, progress), self.options.poll_timeout)
        except asyncio.TimeoutError:
            self.logger.warning(
                f"Status poll for order {order_id} timed out after {progress['attempts']} attempts"
            )
            return StatusCheck(
                status=PaymentSessionStatus.PENDING,
                outcome=PollOutcome.TIMED_OUT,
                attempts=progress["attempts"],
                raw_status=progress["raw_status"],
            )

    async def _poll(self, order_id: str, progress: Dict[str, Any]) -> StatusCheck:
        max_attempts = self.options.poll_attempts
        raw_status: Optional[str] = None
        observed = False

        for attempt in range(1, max_attempts + 1):
            progress["attempts"] = attempt
            try:
                data = await self._request("GET", f"/orders/{order_id}")
                raw_status = data.get("order_status")
                observed = True
                progress["raw_status"] = raw_status
                self.logger.info(f"Poll {attempt}/{max_attempts}: Order {order_id} is {raw_status}")
                if is_cashfree_terminal(raw_status):
                    return StatusCheck(
                        status=map_cashfree_order_status(raw_status),
                        outcome=PollOutcome.SETTLED,
                        attempts=attempt,
                        raw_status=raw_status,
                    )
            except TransientNetworkError as e:
                self.logger.error(f"Poll {attempt}/{max_attempts} for order {order_id} failed: {e.message}")

            if attempt < max_attempts:
                await asyncio.sleep(self.options.poll_interval)

        if not observed:
            return StatusCheck(
                status=PaymentSessionStatus.PENDING,
                outcome=PollOutcome.UNREACHABLE,
                attempts=max_attempts,
            )
        if raw_status == CASHFREE_ACTIVE:
            return StatusCheck(
                status=PaymentSessionStatus.PENDING,
                outcome=PollOutcome.EXHAUSTED,
                attempts=max_attempts,
                raw_status=raw_status,
            )
        return StatusCheck(
            status=map_cashfree_order_status(raw_status),
            outcome=PollOutcome.UNRECOGNIZED,
            attempts=max_attempts,
            raw_status=raw_status,
        )

    async def capture(self, session: PaymentSession) -> PaymentSession:
        # Cashfree settles PAID orders itself; capture only records it.
        session = session.sanitized(self.order_id_key)
        if self._ensure_capturable(session):
            return session
        session.canonical_status = PaymentSessionStatus.CAPTURED
        return session

    async def refund(
        self,
        session: PaymentSession,
        amount: int,
        note: Optional[str] = None,
    ) -> RefundResult:
        session = session.sanitized(self.order_id_key)
        order_id = session.provider_order_id
        if not order_id:
            raise RefundError("No order_id found for refund", provider=self.identifier)

        request = RefundRequest(
            order_id=order_id,
            amount=amount,
            refund_id=f"refund_{order_id}_{epoch_millis()}",
            note=note or DEFAULT_REFUND_NOTE,
        )
        payload = {
            "refund_amount": to_major_units_number(request.amount),
            "refund_id": request.refund_id,
            "refund_note": request.note,
        }
        try:
            data = await self._request("POST", f"/orders/{order_id}/refunds", payload)
        except TransientNetworkError as e:
            self.logger.error(f"Refund failed for order {order_id}: {e.message}")
            raise RefundError(
                f"Refund failed: {e.message}",
                provider=self.identifier,
                order_id=order_id,
                gateway_response=e.gateway_response,
            ) from e

        cf_refund_id = data.get("cf_refund_id")
        self.logger.info(f"Refund initiated: {cf_refund_id}")
        return RefundResult(
            refund_id=data.get("refund_id") or request.refund_id,
            refund_status=data.get("refund_status"),
            refund_amount=request.amount,
            provider_refund_id=str(cf_refund_id) if cf_refund_id is not None else None,
            raw_response=data,
        )

    async def get_webhook_action(self, payload: WebhookPayload) -> WebhookEvent:
        raw = payload.raw_data if payload.raw_data is not None else payload.data
        if not raw:
            self.logger.info("Cashfree test webhook")
            return not_supported(self.identifier, REASON_TEST_EVENT)

        event_id = body_digest(raw)
        try:
            body = decode_webhook_body(raw)
        except ValueError as e:
            self.logger.error(f"Webhook error: {e}")
            return not_supported(self.identifier, REASON_MALFORMED, event_id=event_id)

        self.logger.info(f"Cashfree webhook: {body.get('type')}")
        return map_cashfree_event(body, event_id=event_id)


def _error_body(response: httpx.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {"message": response.text[:500]} if response.text else {}
    return body if isinstance(body, dict) else {}
