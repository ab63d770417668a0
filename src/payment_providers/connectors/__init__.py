"""Payment gateway connectors."""

from typing import Dict, Type

from .base import ConnectorBase, generate_order_id
from .cashfree_connector import CashfreeConnector
from .razorpay_connector import RazorpayConnector

CONNECTOR_CLASSES: Dict[str, Type[ConnectorBase]] = {
    CashfreeConnector.identifier: CashfreeConnector,
    RazorpayConnector.identifier: RazorpayConnector,
}

_connectors: Dict[str, ConnectorBase] = {}


def get_connector(provider: str) -> ConnectorBase:
    """Return the shared connector for ``provider``, configured from the environment.

    Raises:
        KeyError: If the provider is not registered.
        ValueError: If the provider's credentials are not configured.
    """
    if provider not in CONNECTOR_CLASSES:
        raise KeyError(f"Provider not supported: {provider}")
    if provider not in _connectors:
        _connectors[provider] = CONNECTOR_CLASSES[provider]()
    return _connectors[provider]


def reset_connectors() -> None:
    """Drop cached connectors (for tests and credential rotation)."""
    _connectors.clear()


__all__ = [
    "ConnectorBase",
    "CashfreeConnector",
    "RazorpayConnector",
    "CONNECTOR_CLASSES",
    "generate_order_id",
    "get_connector",
    "reset_connectors",
]
