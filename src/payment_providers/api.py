"""HTTP surface for payment sessions and gateway webhooks."""

import logging
from contextlib import asynccontextmanager
from typing import Optional, Dict, Any

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, StrictInt
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy.ext.asyncio import AsyncSession

from .auth import verify_api_key, limiter
from .connectors import CONNECTOR_CLASSES, ConnectorBase, get_connector
from .database import get_db, init_db, close_db
from .errors import (
    FatalOperationError,
    PaymentProviderError,
    SessionNotFoundError,
    SessionValidationError,
)
from .models import InitiatePaymentRequest, WebhookPayload
from .services import PaymentSessionService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    yield
    await close_db()


app = FastAPI(title="Commerce Payment Providers", lifespan=lifespan)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

router = APIRouter(prefix="/payment-sessions", tags=["payment-sessions"])


class AuthorizeBody(BaseModel):
    """Checkout result handed back by the storefront."""
    context: Dict[str, Any] = Field(default_factory=dict)


class RefundBody(BaseModel):
    amount: StrictInt = Field(..., gt=0, description="Amount in minor units")
    note: Optional[str] = None


def _error_response(status_code: int, exc: PaymentProviderError) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "detail": exc.message,
            "provider": exc.provider,
            "order_id": exc.order_id,
        },
    )


@app.exception_handler(SessionValidationError)
async def session_validation_handler(request: Request, exc: SessionValidationError):
    status_code = 404 if isinstance(exc, SessionNotFoundError) else 400
    return _error_response(status_code, exc)


@app.exception_handler(FatalOperationError)
async def fatal_operation_handler(request: Request, exc: FatalOperationError):
    logger.error(f"{exc.provider} operation failed for order {exc.order_id}: {exc.message}")
    return _error_response(502, exc)


def get_provider_connector(provider: str) -> ConnectorBase:
    """Resolve the connector named in the path."""
    try:
        return get_connector(provider)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Provider not supported: {provider}")
    except ValueError as e:
        logger.error(f"Provider {provider} is not configured: {e}")
        raise HTTPException(status_code=503, detail=f"Provider not configured: {provider}")


async def get_session_service(
    connector: ConnectorBase = Depends(get_provider_connector),
    db: AsyncSession = Depends(get_db),
) -> PaymentSessionService:
    return PaymentSessionService(db, connector)


async def get_webhook_service(
    provider: str,
    db: AsyncSession = Depends(get_db),
) -> Optional[PaymentSessionService]:
    """Like get_session_service, but None for providers without a connector."""
    if provider not in CONNECTOR_CLASSES:
        return None
    return PaymentSessionService(db, get_provider_connector(provider))


@router.post("/{provider}")
@limiter.limit("30/minute")
async def create_payment_session(
    request: Request,
    body: InitiatePaymentRequest,
    api_key: str = Depends(verify_api_key),
    service: PaymentSessionService = Depends(get_session_service),
):
    """Create a gateway order and persist the new session."""
    record = await service.create_session(body)
    return record.to_dict()


@router.get("/{provider}/{order_id}")
@limiter.limit("60/minute")
async def get_payment_session(
    request: Request,
    order_id: str,
    api_key: str = Depends(verify_api_key),
    service: PaymentSessionService = Depends(get_session_service),
):
    record = await service.get_session(order_id)
    return {**record.to_dict(), "history": await service.get_session_history(order_id)}


@router.post("/{provider}/{order_id}/authorize")
@limiter.limit("30/minute")
async def authorize_payment_session(
    request: Request,
    order_id: str,
    body: AuthorizeBody,
    api_key: str = Depends(verify_api_key),
    service: PaymentSessionService = Depends(get_session_service),
):
    record = await service.authorize(order_id, body.context)
    return record.to_dict()


@router.get("/{provider}/{order_id}/status")
@limiter.limit("30/minute")
async def get_payment_session_status(
    request: Request,
    order_id: str,
    api_key: str = Depends(verify_api_key),
    service: PaymentSessionService = Depends(get_session_service),
):
    """
    Poll the gateway for the session's status.

    The stored status only moves forward; inconclusive checks are reported
    under ``check`` without changing it.
    """
    record, check = await service.refresh_status(order_id)
    return {**record.to_dict(), "check": check.model_dump(mode="json")}


@router.post("/{provider}/{order_id}/capture")
@limiter.limit("30/minute")
async def capture_payment_session(
    request: Request,
    order_id: str,
    api_key: str = Depends(verify_api_key),
    service: PaymentSessionService = Depends(get_session_service),
):
    record = await service.capture(order_id)
    return record.to_dict()


@router.post("/{provider}/{order_id}/cancel")
@limiter.limit("30/minute")
async def cancel_payment_session(
    request: Request,
    order_id: str,
    api_key: str = Depends(verify_api_key),
    service: PaymentSessionService = Depends(get_session_service),
):
    record = await service.cancel(order_id)
    return record.to_dict()


@router.post("/{provider}/{order_id}/refunds")
@limiter.limit("10/minute")
async def refund_payment_session(
    request: Request,
    order_id: str,
    body: RefundBody,
    api_key: str = Depends(verify_api_key),
    service: PaymentSessionService = Depends(get_session_service),
):
    """Refund a captured session. Gateway failures map to 502."""
    result = await service.refund(order_id, body.amount, body.note)
    return result.model_dump(mode="json")


@app.post("/webhooks/{provider}")
async def receive_webhook(
    provider: str,
    request: Request,
    service: Optional[PaymentSessionService] = Depends(get_webhook_service),
):
    """
    Gateway webhook receiver.

    Acknowledges every delivery the connector could classify with 200,
    including ignored and duplicate ones; the result says whether it was
    applied.
    """
    if service is None:
        logger.warning(f"Webhook received for unknown provider {provider}")
        return {"received": True, "action": "not_supported", "reason": "unknown_provider", "applied": False}

    body = await request.body()
    payload = WebhookPayload(
        raw_data=body or None,
        headers={k.lower(): v for k, v in request.headers.items()},
    )
    return await service.handle_webhook(payload)


@app.get("/health")
async def health():
    return {"status": "healthy", "providers": sorted(CONNECTOR_CLASSES)}


app.include_router(router)
