# payment_providers package
__version__ = "0.1.0"

from .config import CashfreeOptions, RazorpayOptions
from .connectors import (
    ConnectorBase,
    CashfreeConnector,
    RazorpayConnector,
    get_connector,
)
from .errors import (
    PaymentProviderError,
    TransientNetworkError,
    SessionValidationError,
    SessionNotFoundError,
    WebhookAuthenticationError,
    FatalOperationError,
    InitiationError,
    CaptureError,
    RefundError,
)
from .models import (
    CustomerDetails,
    InitiatePaymentRequest,
    PaymentSession,
    AuthorizationResult,
    PollOutcome,
    StatusCheck,
    RefundRequest,
    RefundResult,
    WebhookAction,
    WebhookPayload,
    WebhookEvent,
)
from .money import to_major_units
from .sanitize import flatten_session_data
from .status import PaymentSessionStatus, transition
from .webhooks import apply_webhook_event
