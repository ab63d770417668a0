"""Payment session service that ties a gateway connector to database persistence."""

import logging
from typing import Optional, Dict, Any, List, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from .connectors.base import ConnectorBase
from .database import (
    PaymentSessionRecord,
    PaymentSessionRepository,
    SessionTransitionRepository,
    ProcessedWebhookRepository,
)
from .errors import SessionNotFoundError, SessionValidationError
from .models import (
    InitiatePaymentRequest,
    PaymentSession,
    PollOutcome,
    RefundResult,
    StatusCheck,
    WebhookPayload,
)
from .status import PaymentSessionStatus, transition
from .webhooks import apply_webhook_event

logger = logging.getLogger(__name__)

# Poll outcomes that say nothing about the payment itself
INCONCLUSIVE_OUTCOMES = frozenset({
    PollOutcome.FAILED,
    PollOutcome.UNREACHABLE,
    PollOutcome.TIMED_OUT,
    PollOutcome.MISSING_ORDER_ID,
})


class PaymentSessionService:
    """Service class for payment session operations with persistence."""

    def __init__(self, session: AsyncSession, connector: ConnectorBase):
        """Initialize the service with a database session and a gateway connector.

        Args:
            session: AsyncSession instance for database operations.
            connector: Connector for the gateway the sessions belong to.
        """
        self.session = session
        self.connector = connector
        self.provider = connector.identifier
        self.session_repo = PaymentSessionRepository(session)
        self.history_repo = SessionTransitionRepository(session)
        self.webhook_repo = ProcessedWebhookRepository(session)

    async def get_session(self, provider_order_id: str) -> PaymentSessionRecord:
        """Load a persisted session.

        Raises:
            SessionNotFoundError: If no session has this order id.
        """
        record = await self.session_repo.get_by_order_id(self.provider, provider_order_id)
        if record is None:
            raise SessionNotFoundError(
                f"Payment session not found: {provider_order_id}",
                provider=self.provider,
                order_id=provider_order_id,
            )
        return record

    async def create_session(self, request: InitiatePaymentRequest) -> PaymentSessionRecord:
        """Create the gateway order and persist the resulting session.

        Args:
            request: Amount, currency and customer for the new session.

        Returns:
            Created PaymentSessionRecord instance.

        Raises:
            InitiationError: If the gateway rejects the order.
        """
        payment_session = await self.connector.initiate(request)
        record = await self.session_repo.create(self.provider, payment_session)
        await self.history_repo.create(
            payment_session_id=record.id,
            source="initiate",
            new_status=record.status,
            amount=record.amount,
        )
        return record

    async def authorize(
        self,
        provider_order_id: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> PaymentSessionRecord:
        """Verify the storefront's checkout result and persist the outcome."""
        record = await self.get_session(provider_order_id)
        result = await self.connector.authorize(record.to_session(), context)
        await self._store(record, result.session, source="authorize")
        return record

    async def refresh_status(self, provider_order_id: str) -> Tuple[PaymentSessionRecord, StatusCheck]:
        """Ask the gateway for the session's status and persist any progress.

        Inconclusive checks (gateway unreachable, lookup failed, deadline hit)
        are returned to the caller but never change the stored status.

        Returns:
            Tuple of (record, status check).
        """
        record = await self.get_session(provider_order_id)
        current = record.to_session()
        check = await self.connector.get_status(current)

        if check.outcome in INCONCLUSIVE_OUTCOMES:
            logger.warning(
                f"Status check for {self.provider} order {provider_order_id} "
                f"was inconclusive ({check.outcome.value})"
            )
            return record, check

        current.canonical_status = transition(current.canonical_status, check.status)
        detail = f"{check.outcome.value}:{check.raw_status}" if check.raw_status else check.outcome.value
        await self._store(record, current, source="poll", detail=detail)
        return record, check

    async def capture(self, provider_order_id: str) -> PaymentSessionRecord:
        """
        Raises:
            CaptureError: If the session is not authorized or the gateway
                capture fails.
        """
        record = await self.get_session(provider_order_id)
        captured = await self.connector.capture(record.to_session())
        await self._store(record, captured, source="capture", amount=captured.amount)
        return record

    async def cancel(self, provider_order_id: str) -> PaymentSessionRecord:
        record = await self.get_session(provider_order_id)
        canceled = await self.connector.cancel(record.to_session())
        await self._store(record, canceled, source="cancel")
        return record

    async def refund(
        self,
        provider_order_id: str,
        amount: int,
        note: Optional[str] = None,
    ) -> RefundResult:
        """Refund part or all of a captured session.

        Raises:
            SessionValidationError: If the session is not captured or the
                amount exceeds what is left to refund.
            RefundError: If the gateway refund fails.
        """
        record = await self.get_session(provider_order_id)
        if record.status != PaymentSessionStatus.CAPTURED.value:
            raise SessionValidationError(
                f"Cannot refund a session in status {record.status}",
                provider=self.provider,
                order_id=provider_order_id,
            )
        refundable = record.amount - record.refunded_amount
        if amount <= 0 or amount > refundable:
            raise SessionValidationError(
                f"Refund amount {amount} must be between 1 and {refundable}",
                provider=self.provider,
                order_id=provider_order_id,
            )

        result = await self.connector.refund(record.to_session(), amount, note)

        await self.session_repo.add_refund(record, amount)
        await self.history_repo.create(
            payment_session_id=record.id,
            source="refund",
            previous_status=record.status,
            new_status=record.status,
            amount=amount,
            detail=result.refund_id,
        )
        logger.info(f"Refunded {amount} for {self.provider} order {provider_order_id}")
        return result

    async def handle_webhook(self, payload: WebhookPayload) -> Dict[str, Any]:
        """Authenticate, de-duplicate and apply an inbound webhook.

        Never raises for gateway-side problems: unsupported, unauthenticated
        and duplicate deliveries are acknowledged and reported in the result.

        Returns:
            Acknowledgement dict with ``received``, ``action`` and ``applied``.
        """
        event = await self.connector.get_webhook_action(payload)
        result: Dict[str, Any] = {
            "received": True,
            "action": event.action.value,
            "event_id": event.event_id,
            "applied": False,
        }
        if not event.is_supported:
            result["reason"] = event.reason
            return result

        if event.event_id and await self.webhook_repo.exists(self.provider, event.event_id):
            logger.info(f"Ignoring duplicate {self.provider} webhook {event.event_id}")
            result["duplicate"] = True
            return result

        record = None
        if event.order_id:
            record = await self.session_repo.get_by_order_id(self.provider, event.order_id)

        if record is None:
            logger.warning(
                f"{self.provider} webhook {event.event_type} references unknown order {event.order_id}"
            )
        else:
            current = record.to_session()
            if apply_webhook_event(current, event):
                self.connector.merge_webhook_payload(current, event)
                await self._store(record, current, source=f"webhook:{event.event_type}")
                result["applied"] = True

        if event.event_id:
            await self.webhook_repo.create(
                provider=self.provider,
                event_id=event.event_id,
                action=event.action.value,
                event_type=event.event_type,
                provider_order_id=event.order_id,
            )
        return result

    async def get_session_history(self, provider_order_id: str) -> List[Dict[str, Any]]:
        """Status history of a session, newest first."""
        record = await self.get_session(provider_order_id)
        history = await self.history_repo.get_by_session_id(record.id)
        return [h.to_dict() for h in history]

    async def _store(
        self,
        record: PaymentSessionRecord,
        payment_session: PaymentSession,
        source: str,
        amount: Optional[int] = None,
        detail: Optional[str] = None,
    ) -> None:
        """Persist ``payment_session`` and record a history entry if its status moved."""
        previous_status = record.status
        await self.session_repo.save(record, payment_session)
        if record.status != previous_status:
            await self.history_repo.create(
                payment_session_id=record.id,
                source=source,
                previous_status=previous_status,
                new_status=record.status,
                amount=amount,
                detail=detail,
            )
            logger.info(
                f"{self.provider} order {record.provider_order_id}: "
                f"{previous_status} -> {record.status} ({source})"
            )
