"""Repository layer for payment session persistence."""

import logging
from datetime import datetime, timezone
from typing import Optional, List

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import PaymentSession
from .models import (
    PaymentSessionRecord,
    SessionTransition,
    ProcessedWebhook,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class PaymentSessionRepository:
    """Repository for PaymentSessionRecord CRUD operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, provider: str, payment_session: PaymentSession) -> PaymentSessionRecord:
        """Persist a freshly initiated session.

        Args:
            provider: Connector identifier.
            payment_session: Session returned by the connector.

        Returns:
            Created PaymentSessionRecord instance.
        """
        record = PaymentSessionRecord(
            provider=provider,
            provider_order_id=payment_session.provider_order_id,
            status=payment_session.canonical_status.value,
            amount=payment_session.amount,
            currency=payment_session.currency,
            created_at=payment_session.created_at.astimezone(timezone.utc).replace(tzinfo=None),
        )
        record.raw_payload = payment_session.raw_payload

        self.session.add(record)
        await self.session.flush()

        logger.info(f"Created {provider} session {record.provider_order_id} with status {record.status}")
        return record

    async def get_by_order_id(self, provider: str, provider_order_id: str) -> Optional[PaymentSessionRecord]:
        """Get a session by gateway order id.

        Returns:
            PaymentSessionRecord if found, None otherwise.
        """
        result = await self.session.execute(
            select(PaymentSessionRecord).where(
                and_(
                    PaymentSessionRecord.provider == provider,
                    PaymentSessionRecord.provider_order_id == provider_order_id,
                )
            )
        )
        return result.scalar_one_or_none()

    async def save(self, record: PaymentSessionRecord, payment_session: PaymentSession) -> PaymentSessionRecord:
        """Write the session's status and sanitized payload back to its record."""
        record.status = payment_session.canonical_status.value
        record.raw_payload = payment_session.raw_payload
        record.updated_at = _utcnow()
        await self.session.flush()
        return record

    async def add_refund(self, record: PaymentSessionRecord, amount: int) -> PaymentSessionRecord:
        record.refunded_amount = record.refunded_amount + amount
        record.updated_at = _utcnow()
        await self.session.flush()
        return record

    async def list_by_status(
        self,
        status: str,
        limit: int = 100,
        offset: int = 0,
    ) -> List[PaymentSessionRecord]:
        """List sessions in a status, newest first."""
        result = await self.session.execute(
            select(PaymentSessionRecord)
            .where(PaymentSessionRecord.status == status)
            .order_by(PaymentSessionRecord.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())


class SessionTransitionRepository:
    """Repository for SessionTransition records."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        payment_session_id: str,
        source: str,
        new_status: str,
        previous_status: Optional[str] = None,
        amount: Optional[int] = None,
        detail: Optional[str] = None,
    ) -> SessionTransition:
        """Record a status change (or a money movement) for a session."""
        transition = SessionTransition(
            payment_session_id=payment_session_id,
            source=source,
            new_status=new_status,
            previous_status=previous_status,
            amount=amount,
            detail=detail,
        )
        self.session.add(transition)
        await self.session.flush()

        logger.debug(
            f"Session {payment_session_id}: {previous_status} -> {new_status} ({source})"
        )
        return transition

    async def get_by_session_id(
        self,
        payment_session_id: str,
        limit: int = 100,
    ) -> List[SessionTransition]:
        """History for a session, newest first."""
        result = await self.session.execute(
            select(SessionTransition)
            .where(SessionTransition.payment_session_id == payment_session_id)
            .order_by(SessionTransition.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())


class ProcessedWebhookRepository:
    """Repository recording webhook deliveries that were already applied."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def exists(self, provider: str, event_id: str) -> bool:
        result = await self.session.execute(
            select(ProcessedWebhook.id).where(
                and_(
                    ProcessedWebhook.provider == provider,
                    ProcessedWebhook.event_id == event_id,
                )
            )
        )
        return result.scalar_one_or_none() is not None

    async def create(
        self,
        provider: str,
        event_id: str,
        action: str,
        event_type: Optional[str] = None,
        provider_order_id: Optional[str] = None,
    ) -> ProcessedWebhook:
        processed = ProcessedWebhook(
            provider=provider,
            event_id=event_id,
            action=action,
            event_type=event_type,
            provider_order_id=provider_order_id,
        )
        self.session.add(processed)
        await self.session.flush()
        return processed
