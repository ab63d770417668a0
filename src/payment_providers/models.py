"""Canonical models exchanged between the host and the gateway connectors."""

import enum
from datetime import datetime, timezone
from typing import Optional, Dict, Any, Union

from pydantic import BaseModel, Field, StrictInt, field_validator

from .sanitize import flatten_session_data
from .status import PaymentSessionStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CustomerDetails(BaseModel):
    id: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class InitiatePaymentRequest(BaseModel):
    """Input to ``initiate``/``update``.

    ``resource_id`` is the idempotency seed the host uses for the cart or
    payment collection; the connector derives the gateway order id from it.
    """
    currency: str = Field(..., min_length=3, max_length=3)
    amount: StrictInt = Field(..., ge=0)  # minor units
    customer: Optional[CustomerDetails] = None
    resource_id: Optional[str] = None
    return_url: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("currency")
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        return v.upper()


class PaymentSession(BaseModel):
    """A payment session as the host persists it.

    ``provider_order_id`` is assigned by the gateway and may not change once
    set. Gateway-specific fields live in ``raw_payload`` only.
    """
    provider_order_id: Optional[str] = None
    amount: StrictInt = Field(..., ge=0)  # minor units
    currency: str
    canonical_status: PaymentSessionStatus = PaymentSessionStatus.PENDING
    raw_payload: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utcnow)

    @field_validator("currency")
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        return v.upper()

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "provider_order_id":
            current = self.provider_order_id
            if current and value != current:
                raise ValueError(
                    f"provider_order_id is immutable once set ({current!r} -> {value!r})"
                )
        super().__setattr__(name, value)

    def sanitized(self, key: str = "order_id") -> "PaymentSession":
        """Copy of the session with ``raw_payload`` unwrapped.

        ``provider_order_id`` is back-filled from the unwrapped payload when
        the session does not carry one yet.
        """
        flat = flatten_session_data(self.raw_payload, key=key)
        order_id = self.provider_order_id or flat.get(key) or None
        return self.model_copy(update={"raw_payload": flat, "provider_order_id": order_id})


class AuthorizationResult(BaseModel):
    status: PaymentSessionStatus
    session: PaymentSession


class PollOutcome(str, enum.Enum):
    """How ``get_status`` arrived at its answer."""
    SETTLED = "settled"
    EXHAUSTED = "exhausted"
    UNREACHABLE = "unreachable"
    UNRECOGNIZED = "unrecognized"
    MISSING_ORDER_ID = "missing_order_id"
    TIMED_OUT = "timed_out"
    LOCAL = "local"
    FAILED = "failed"


class StatusCheck(BaseModel):
    status: PaymentSessionStatus
    outcome: PollOutcome
    attempts: int = 0
    raw_status: Optional[str] = None


class RefundRequest(BaseModel):
    order_id: str
    amount: StrictInt = Field(..., ge=0)  # minor units
    refund_id: str
    note: Optional[str] = None


class RefundResult(BaseModel):
    refund_id: str
    refund_status: Optional[str] = None
    refund_amount: int  # minor units, as requested
    provider_refund_id: Optional[str] = None
    raw_response: Dict[str, Any] = Field(default_factory=dict)


class WebhookAction(str, enum.Enum):
    AUTHORIZED = "authorized"
    FAILED = "failed"
    CANCELED = "canceled"
    CAPTURED = "captured"
    NOT_SUPPORTED = "not_supported"


class WebhookPayload(BaseModel):
    """Inbound webhook as received by the host.

    ``raw_data`` is the request body (text, bytes, or an already-parsed
    structure); ``data`` carries any envelope the host wrapped around it.
    """
    raw_data: Optional[Union[str, bytes, Dict[str, Any]]] = None
    headers: Dict[str, str] = Field(default_factory=dict)
    data: Optional[Dict[str, Any]] = None

    def header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup."""
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return None


class WebhookEvent(BaseModel):
    gateway: str
    event_type: Optional[str] = None
    action: WebhookAction
    payload: Dict[str, Any] = Field(default_factory=dict)
    event_id: Optional[str] = None
    reason: Optional[str] = None

    @property
    def is_supported(self) -> bool:
        return self.action != WebhookAction.NOT_SUPPORTED

    @property
    def order_id(self) -> Optional[str]:
        value = self.payload.get("order_id")
        return str(value) if value else None

