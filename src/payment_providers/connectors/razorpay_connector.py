"""Razorpay connector built on the official razorpay-python SDK."""

import asyncio
import json
from typing import Optional, Dict, Any, Callable

from ..config import RazorpayOptions
from ..errors import CaptureError, InitiationError, RefundError, WebhookAuthenticationError
from ..models import (
    AuthorizationResult,
    InitiatePaymentRequest,
    PaymentSession,
    PollOutcome,
    RefundRequest,
    RefundResult,
    StatusCheck,
    WebhookEvent,
    WebhookPayload,
)
from ..signatures import verify_signature
from ..status import (
    PaymentSessionStatus,
    classify_razorpay_authorization,
    map_razorpay_payment_status,
    transition,
)
from ..webhooks import (
    REASON_MALFORMED,
    REASON_MISSING_SIGNATURE,
    REASON_SIGNATURE_MISMATCH,
    body_digest,
    decode_webhook_body,
    map_razorpay_event,
    not_supported,
)
from .base import ConnectorBase, epoch_millis

SIGNATURE_HEADER = "x-razorpay-signature"
EVENT_ID_HEADER = "x-razorpay-event-id"

# Razorpay caps receipts at 40 characters
MAX_RECEIPT_LENGTH = 40

CHECKOUT_FIELDS = ("razorpay_payment_id", "razorpay_order_id", "razorpay_signature")


class RazorpayConnector(ConnectorBase):
    """
    Razorpay connector. Amounts are sent to Razorpay in minor units as-is.
    The storefront completes Razorpay Checkout and hands back the payment id
    and signature, which ``authorize`` verifies against the key secret.

    SDK calls are blocking and run in a worker thread.
    """

    identifier = "razorpay"
    order_id_key = "id"

    def __init__(
        self,
        options: Optional[RazorpayOptions] = None,
        client: Any = None,
        logger=None,
    ):
        super().__init__(logger)
        self.options = options or RazorpayOptions.from_env()
        self._client = client if client is not None else self._build_client()

    def _build_client(self) -> Any:
        import razorpay

        return razorpay.Client(auth=(self.options.key_id, self.options.key_secret))

    async def _call(self, fn: Callable[..., Any], *args, **kwargs) -> Any:
        return await asyncio.to_thread(fn, *args, **kwargs)

    async def initiate(self, request: InitiatePaymentRequest) -> PaymentSession:
        receipt = (request.resource_id or f"receipt_{epoch_millis()}")[:MAX_RECEIPT_LENGTH]
        notes = {
            "customer_id": request.customer.id if request.customer else None,
            "resource_id": request.resource_id,
        }
        order_data = {
            "amount": request.amount,
            "currency": request.currency,
            "receipt": receipt,
            "notes": {k: v for k, v in notes.items() if v},
        }
        try:
            order = await self._call(self._client.order.create, data=order_data)
        except Exception as e:
            self.logger.error(f"Razorpay Order Creation Failed: {e}")
            raise InitiationError(
                f"Razorpay Order Creation Failed: {e}",
                provider=self.identifier,
            ) from e

        raw_payload = {
            "id": order["id"],
            "amount": order.get("amount", request.amount),
            "currency": order.get("currency", request.currency),
            "receipt": order.get("receipt", receipt),
            "notes": order.get("notes") or order_data["notes"],
            "status": order.get("status", "created"),
        }
        self.logger.info(f"Razorpay order {order['id']} created")
        return PaymentSession(
            provider_order_id=order["id"],
            amount=request.amount,
            currency=request.currency,
            raw_payload=raw_payload,
        )

    async def authorize(
        self,
        session: PaymentSession,
        context: Optional[Dict[str, Any]] = None,
    ) -> AuthorizationResult:
        session = session.sanitized(self.order_id_key)
        fields = {**session.raw_payload, **(context or {})}
        for name in CHECKOUT_FIELDS:
            if fields.get(name):
                session.raw_payload[name] = fields[name]

        order_id = fields.get("razorpay_order_id")
        if order_id and session.provider_order_id and order_id != session.provider_order_id:
            self.logger.error(
                f"Checkout order {order_id} does not match session order {session.provider_order_id}"
            )
            status = PaymentSessionStatus.ERROR
        else:
            status = classify_razorpay_authorization(
                order_id or session.provider_order_id,
                fields.get("razorpay_payment_id"),
                fields.get("razorpay_signature"),
                self.options.key_secret,
            )

        if status == PaymentSessionStatus.AUTHORIZED:
            session.raw_payload["status"] = "authorized"
        elif status == PaymentSessionStatus.ERROR:
            session.raw_payload["error"] = "Signature verification failed"
        session.canonical_status = transition(session.canonical_status, status)
        return AuthorizationResult(status=session.canonical_status, session=session)

    async def get_status(self, session: PaymentSession) -> StatusCheck:
        session = session.sanitized(self.order_id_key)
        raw = session.raw_payload
        if raw.get("status") == "captured":
            return StatusCheck(status=PaymentSessionStatus.CAPTURED, outcome=PollOutcome.LOCAL, raw_status="captured")
        if raw.get("status") == "authorized":
            return StatusCheck(status=PaymentSessionStatus.AUTHORIZED, outcome=PollOutcome.LOCAL, raw_status="authorized")

        payment_id = raw.get("razorpay_payment_id")
        if not payment_id:
            return StatusCheck(status=PaymentSessionStatus.PENDING, outcome=PollOutcome.LOCAL)

        try:
            payment = await self._call(self._client.payment.fetch, payment_id)
        except Exception as e:
            self.logger.error(f"Razorpay payment fetch failed for {payment_id}: {e}")
            return StatusCheck(status=PaymentSessionStatus.ERROR, outcome=PollOutcome.FAILED, attempts=1)

        raw_status = payment.get("status")
        status = map_razorpay_payment_status(raw_status)
        outcome = PollOutcome.EXHAUSTED if status == PaymentSessionStatus.PENDING else PollOutcome.SETTLED
        return StatusCheck(status=status, outcome=outcome, attempts=1, raw_status=raw_status)

    async def capture(self, session: PaymentSession) -> PaymentSession:
        session = session.sanitized(self.order_id_key)
        if self._ensure_capturable(session):
            return session
        payment_id = session.raw_payload.get("razorpay_payment_id")
        if not payment_id:
            raise CaptureError(
                "No razorpay_payment_id found for capture",
                provider=self.identifier,
                order_id=session.provider_order_id,
            )
        try:
            capture = await self._call(
                self._client.payment.capture,
                payment_id,
                session.amount,
                {"currency": session.currency},
            )
        except Exception as e:
            self.logger.error(f"Capture failed: {e}")
            raise CaptureError(
                f"Capture failed: {e}",
                provider=self.identifier,
                order_id=session.provider_order_id,
            ) from e

        session.raw_payload["status"] = "captured"
        session.raw_payload["capture_id"] = capture.get("id")
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
            raise RefundError("No order id found for refund", provider=self.identifier)
        payment_id = session.raw_payload.get("razorpay_payment_id")
        if not payment_id:
            raise RefundError(
                "No razorpay_payment_id found for refund",
                provider=self.identifier,
                order_id=order_id,
            )

        request = RefundRequest(
            order_id=order_id,
            amount=amount,
            refund_id=f"rfnd_{order_id}_{epoch_millis()}",
            note=note,
        )
        data: Dict[str, Any] = {
            "amount": request.amount,
            "receipt": request.refund_id[:MAX_RECEIPT_LENGTH],
        }
        if request.note:
            data["notes"] = {"reason": request.note}
        try:
            refund = await self._call(self._client.payment.refund, payment_id, data)
        except Exception as e:
            self.logger.error(f"Razorpay Refund Failed: {e}")
            raise RefundError(
                f"Razorpay Refund Failed: {e}",
                provider=self.identifier,
                order_id=order_id,
            ) from e

        self.logger.info(f"Refund initiated: {refund.get('id')}")
        return RefundResult(
            refund_id=request.refund_id,
            refund_status=refund.get("status"),
            refund_amount=request.amount,
            provider_refund_id=refund.get("id"),
            raw_response=refund,
        )

    def merge_webhook_payload(self, session: PaymentSession, event: WebhookEvent) -> None:
        super().merge_webhook_payload(session, event)
        # refund and capture read the payment id under its checkout name
        if event.payload.get("transaction_id"):
            session.raw_payload["razorpay_payment_id"] = event.payload["transaction_id"]
        if event.event_type == "payment.captured":
            session.raw_payload["status"] = "captured"
        elif event.event_type == "payment.authorized":
            session.raw_payload["status"] = "authorized"

    def _verify_webhook(self, payload: WebhookPayload, body: bytes) -> None:
        """
        Raises:
            WebhookAuthenticationError: If the secret or signature is absent,
                or the signature does not match the body.
        """
        signature = payload.header(SIGNATURE_HEADER)
        if not self.options.webhook_secret or not signature:
            raise WebhookAuthenticationError(
                "Webhook secret or signature missing",
                reason=REASON_MISSING_SIGNATURE,
                provider=self.identifier,
            )
        if not verify_signature(body, signature, self.options.webhook_secret):
            raise WebhookAuthenticationError(
                "Webhook signature mismatch",
                reason=REASON_SIGNATURE_MISMATCH,
                provider=self.identifier,
            )

    async def get_webhook_action(self, payload: WebhookPayload) -> WebhookEvent:
        raw = payload.raw_data if payload.raw_data is not None else payload.data
        if not raw:
            return not_supported(self.identifier, REASON_MALFORMED)

        event_id = payload.header(EVENT_ID_HEADER) or body_digest(raw)
        try:
            self._verify_webhook(payload, _signing_body(raw))
        except WebhookAuthenticationError as e:
            if e.reason == REASON_SIGNATURE_MISMATCH:
                self.logger.warning(
                    f"Razorpay webhook signature verification failed for event {event_id}"
                )
            else:
                self.logger.info(f"Razorpay webhook ignored: {e.message}")
            return not_supported(self.identifier, e.reason, event_id=event_id)

        try:
            body = decode_webhook_body(raw)
        except ValueError as e:
            self.logger.error(f"Razorpay webhook error: {e}")
            return not_supported(self.identifier, REASON_MALFORMED, event_id=event_id)

        self.logger.info(f"Razorpay webhook: {body.get('event')}")
        return map_razorpay_event(body, event_id=event_id)


def _signing_body(raw: Any) -> bytes:
    # Signature covers the exact request bytes; a pre-parsed body is
    # re-serialized compactly.
    if isinstance(raw, dict):
        return json.dumps(raw, separators=(",", ":")).encode("utf-8")
    if isinstance(raw, str):
        return raw.encode("utf-8")
    return bytes(raw)
