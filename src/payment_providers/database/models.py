"""SQLAlchemy models for payment session persistence."""

import uuid
import json
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List

from sqlalchemy import (
    String,
    Integer,
    DateTime,
    ForeignKey,
    Text,
    Index,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, relationship, Mapped, mapped_column

from ..models import PaymentSession
from ..status import PaymentSessionStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class PaymentSessionRecord(Base):
    """Persisted payment session, addressed by the gateway order id."""
    __tablename__ = "payment_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    provider_order_id: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default=PaymentSessionStatus.PENDING.value)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    refunded_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Sanitized gateway payload
    raw_payload_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    transitions: Mapped[List["SessionTransition"]] = relationship(
        "SessionTransition",
        back_populates="payment_session",
        cascade="all, delete-orphan",
        order_by="SessionTransition.created_at.desc()"
    )

    __table_args__ = (
        UniqueConstraint("provider", "provider_order_id", name="uq_payment_sessions_provider_order"),
        Index("ix_payment_sessions_status", "status"),
        Index("ix_payment_sessions_created_at", "created_at"),
    )

    @property
    def raw_payload(self) -> Dict[str, Any]:
        """Get raw payload as dictionary."""
        if self.raw_payload_json:
            return json.loads(self.raw_payload_json)
        return {}

    @raw_payload.setter
    def raw_payload(self, value: Optional[Dict[str, Any]]) -> None:
        """Set raw payload from dictionary."""
        if value:
            self.raw_payload_json = json.dumps(value, default=str)
        else:
            self.raw_payload_json = None

    def to_session(self) -> PaymentSession:
        """Rebuild the canonical session this record was stored from."""
        return PaymentSession(
            provider_order_id=self.provider_order_id,
            amount=self.amount,
            currency=self.currency,
            canonical_status=PaymentSessionStatus(self.status),
            raw_payload=self.raw_payload,
            created_at=self.created_at.replace(tzinfo=timezone.utc),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert payment session to dictionary representation."""
        return {
            "id": self.id,
            "provider": self.provider,
            "provider_order_id": self.provider_order_id,
            "status": self.status,
            "amount": self.amount,
            "currency": self.currency,
            "refunded_amount": self.refunded_amount,
            "raw_payload": self.raw_payload,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class SessionTransition(Base):
    """Status history of a payment session."""
    __tablename__ = "session_transitions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    payment_session_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("payment_sessions.id"), nullable=False, index=True
    )

    # What caused the transition: initiate, poll, refund, webhook:<event type>
    source: Mapped[str] = mapped_column(String(100), nullable=False)
    previous_status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    new_status: Mapped[str] = mapped_column(String(50), nullable=False)
    amount: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    detail: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)

    payment_session: Mapped["PaymentSessionRecord"] = relationship(
        "PaymentSessionRecord", back_populates="transitions"
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert transition to dictionary representation."""
        return {
            "id": self.id,
            "payment_session_id": self.payment_session_id,
            "source": self.source,
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "amount": self.amount,
            "detail": self.detail,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class ProcessedWebhook(Base):
    """Webhook deliveries already applied, keyed by gateway event id."""
    __tablename__ = "processed_webhooks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    event_id: Mapped[str] = mapped_column(String(255), nullable=False)
    event_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    provider_order_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)

    __table_args__ = (
        UniqueConstraint("provider", "event_id", name="uq_processed_webhooks_provider_event"),
    )
