import logging
import secrets
import time
from abc import ABC, abstractmethod
from typing import Optional, Dict, Any

from ..models import (
    AuthorizationResult,
    InitiatePaymentRequest,
    PaymentSession,
    RefundResult,
    StatusCheck,
    WebhookEvent,
    WebhookPayload,
)
from ..errors import CaptureError
from ..status import PaymentSessionStatus


def epoch_millis() -> int:
    return time.time_ns() // 1_000_000


def random_seed() -> str:
    return f"sess_{secrets.token_hex(4)}"


def generate_order_id(seed: Optional[str], prefix: str = "order") -> str:
    """Gateway order id unique per initiation attempt.

    Combines the host's idempotency seed (or a random fallback) with a
    millisecond timestamp, so a retried initiation never re-posts an
    existing id.
    """
    return f"{prefix}_{seed or random_seed()}_{epoch_millis()}"


class ConnectorBase(ABC):
    """
    Gateway connector interface. Every operation takes and returns the
    canonical models; gateway-specific fields live in ``raw_payload`` only.

    Read operations (``authorize``, ``get_status``) never raise and degrade
    to PENDING/ERROR. Write operations that move money raise a
    ``FatalOperationError`` subclass on failure.
    """

    identifier: str = ""
    # raw_payload field holding the gateway order id
    order_id_key: str = "order_id"

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(type(self).__module__)

    @abstractmethod
    async def initiate(self, request: InitiatePaymentRequest) -> PaymentSession:
        """Create the gateway order and return a new session."""
        raise NotImplementedError

    async def update(self, request: InitiatePaymentRequest) -> PaymentSession:
        """Sessions are updated by creating a fresh gateway order."""
        return await self.initiate(request)

    @abstractmethod
    async def authorize(
        self,
        session: PaymentSession,
        context: Optional[Dict[str, Any]] = None,
    ) -> AuthorizationResult:
        raise NotImplementedError

    @abstractmethod
    async def get_status(self, session: PaymentSession) -> StatusCheck:
        raise NotImplementedError

    @abstractmethod
    async def capture(self, session: PaymentSession) -> PaymentSession:
        raise NotImplementedError

    @abstractmethod
    async def refund(
        self,
        session: PaymentSession,
        amount: int,
        note: Optional[str] = None,
    ) -> RefundResult:
        raise NotImplementedError

    @abstractmethod
    async def get_webhook_action(self, payload: WebhookPayload) -> WebhookEvent:
        """
        Authenticate (where the gateway supports it) and map an inbound
        webhook to a canonical action. Never raises.
        """
        raise NotImplementedError

    def merge_webhook_payload(self, session: PaymentSession, event: WebhookEvent) -> None:
        """Copy the non-empty fields of a mapped webhook into ``raw_payload``."""
        for key, value in event.payload.items():
            if key != "order_id" and value is not None:
                session.raw_payload[key] = value

    async def cancel(self, session: PaymentSession) -> PaymentSession:
        session = session.sanitized(self.order_id_key)
        session.canonical_status = PaymentSessionStatus.CANCELED
        return session

    async def retrieve(self, session: PaymentSession) -> PaymentSession:
        return session.sanitized(self.order_id_key)

    async def delete(self, session: PaymentSession) -> PaymentSession:
        return session.sanitized(self.order_id_key)

    def _ensure_capturable(self, session: PaymentSession) -> bool:
        """Check the AUTHORIZED precondition for capture.

        Returns:
            True if the session is already captured and there is nothing to do.

        Raises:
            CaptureError: If the session is in any other state.
        """
        if session.canonical_status == PaymentSessionStatus.CAPTURED:
            return True
        if session.canonical_status != PaymentSessionStatus.AUTHORIZED:
            raise CaptureError(
                f"Cannot capture a session in status {session.canonical_status.value}",
                provider=self.identifier,
                order_id=session.provider_order_id,
            )
        return False

    def health_check(self) -> Dict[str, Any]:
        return {"ok": True, "provider": self.identifier}
