"""Database module for payment session persistence."""

from .models import (
    Base,
    PaymentSessionRecord,
    SessionTransition,
    ProcessedWebhook,
)
from .session import (
    get_db,
    get_database_url,
    init_db,
    close_db,
    create_async_engine,
    get_async_session_factory,
)
from .repository import (
    PaymentSessionRepository,
    SessionTransitionRepository,
    ProcessedWebhookRepository,
)

__all__ = [
    # Models
    "Base",
    "PaymentSessionRecord",
    "SessionTransition",
    "ProcessedWebhook",
    # Session management
    "get_db",
    "get_database_url",
    "init_db",
    "close_db",
    "create_async_engine",
    "get_async_session_factory",
    # Repositories
    "PaymentSessionRepository",
    "SessionTransitionRepository",
    "ProcessedWebhookRepository",
]
