"""Exception hierarchy shared by the gateway connectors."""

from typing import Optional, Dict, Any


class PaymentProviderError(Exception):
    """Base class for gateway connector errors."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        order_id: Optional[str] = None,
        gateway_response: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.order_id = order_id
        self.gateway_response = gateway_response


class TransientNetworkError(PaymentProviderError):
    """A gateway call failed at the transport or HTTP layer.

    Swallowed by the status poll loop; wrapped into a FatalOperationError
    by write operations.
    """


class SessionValidationError(PaymentProviderError):
    """The session data does not carry what the operation needs."""


class SessionNotFoundError(SessionValidationError):
    """No persisted session matches the gateway order id."""


class WebhookAuthenticationError(PaymentProviderError):
    """Inbound webhook signature is absent or does not match."""

    def __init__(self, message: str, reason: str, **kwargs):
        super().__init__(message, **kwargs)
        self.reason = reason


class FatalOperationError(PaymentProviderError):
    """A money-moving operation failed and must not be treated as done."""


class InitiationError(FatalOperationError):
    pass


class CaptureError(FatalOperationError):
    pass


class RefundError(FatalOperationError):
    pass
