from datetime import datetime, timezone
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from src.infrastructure.db.session import SessionLocal
from src.application.webhook_service import PaymentWebhookService, WebhookResult
from src.api.schemas.schemas import (
    HealthResponse,
    WebhookAckResponse,
    WebhookStatusResponse,
)
from src.domain.exceptions import (
    PaymentWebhookError,
    ReconciliationTargetNotFoundError,
    WebhookAuthenticationError,
    WebhookConfigurationError,
)
from src.domain.state_machine import TargetType
from src.infrastructure.config import WebhookSettings
from src.infrastructure.email import EmailNotificationService, OrderConfirmationSender
from src.infrastructure.logging import bind_correlation_id
from src.infrastructure.rate_limit import InMemoryRateLimiter, RateLimiter


router = APIRouter()
logger = logging.getLogger(__name__)

_rate_limiter = InMemoryRateLimiter()


def get_db():
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_settings() -> WebhookSettings:
    try:
        return WebhookSettings.from_env()
    except WebhookConfigurationError as exc:
        logger.error("Invalid webhook configuration: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook endpoint misconfigured",
        ) from exc


def get_rate_limiter() -> RateLimiter:
    return _rate_limiter


def get_notifier(
    settings: WebhookSettings = Depends(get_settings),
) -> OrderConfirmationSender:
    return EmailNotificationService.from_settings(settings)


async def read_raw_body(request: Request) -> bytes:
    return await request.body()


def client_identifier(request: Request, trust_proxy_headers: bool = False) -> str:
    """
    Rate-limit key for the caller. Forwarding headers are client supplied,
    so they are only honoured when the app runs behind a proxy that sets them.
    """
    peer = request.client.host if request.client else None
    if not trust_proxy_headers:
        return f"ip:{peer or 'unknown'}"

    forwarded = request.headers.get("x-forwarded-for")
    ip = (
        (forwarded.split(",")[0].strip() if forwarded else None)
        or request.headers.get("x-real-ip")
        or request.headers.get("cf-connecting-ip")
        or peer
        or "unknown"
    )
    return f"ip:{ip}"


def _ack_response(result: WebhookResult) -> WebhookAckResponse:
    response = WebhookAckResponse(
        received=True,
        processed=result.processed,
        event_id=result.event_id,
        reason=result.reason,
        duplicate=True if result.duplicate else None,
    )

    outcome = result.outcome
    if outcome is None:
        return response

    response.target_type = outcome.target_type.value
    if outcome.target_type is TargetType.ORDER:
        response.order_id = outcome.target_id
    else:
        response.booking_id = outcome.target_id
    response.previous_status = outcome.previous_status
    response.status = outcome.new_status
    response.payment_status = outcome.new_payment_status
    response.applied = outcome.applied
    return response


def _error_response(status_code: int, error: str, **context) -> JSONResponse:
    body = WebhookAckResponse(
        received=True,
        processed=False,
        error=error,
        **context,
    )
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(exclude_none=True),
    )


@router.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse(status="ok")


@router.get("/webhook", response_model=WebhookStatusResponse)
def webhook_status(settings: WebhookSettings = Depends(get_settings)):
    return WebhookStatusResponse(
        status="active",
        secret_configured=settings.secret_configured,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


@router.post(
    "/webhook",
    response_model=WebhookAckResponse,
    response_model_exclude_none=True,
)
def receive_webhook(
    request: Request,
    raw_body: bytes = Depends(read_raw_body),
    webhook_signature: str | None = Header(default=None, alias="webhook-signature"),
    webhook_id: str | None = Header(default=None, alias="webhook-id"),
    webhook_timestamp: str | None = Header(default=None, alias="webhook-timestamp"),
    db: Session = Depends(get_db),
    settings: WebhookSettings = Depends(get_settings),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
    notifier: OrderConfirmationSender = Depends(get_notifier),
):
    bind_correlation_id(webhook_id)

    identifier = client_identifier(request, settings.trust_proxy_headers)
    try:
        quota = rate_limiter.check(identifier, settings.rate_limit_preset)
    except ValueError as exc:
        logger.error("Rate limit preset misconfigured: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook endpoint misconfigured",
        ) from exc

    if not quota.allowed:
        logger.warning("Webhook rate limit exceeded for %s", identifier)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many requests",
            headers=quota.headers(),
        )

    service = PaymentWebhookService(db, settings, notifier)

    try:
        result = service.handle(
            raw_body,
            signature=webhook_signature,
            webhook_id=webhook_id,
            timestamp=webhook_timestamp,
        )
    except (WebhookConfigurationError, WebhookAuthenticationError) as exc:
        raise HTTPException(
            status_code=exc.status_code,
            detail=str(exc),
        ) from exc
    except ReconciliationTargetNotFoundError as exc:
        id_field = "order_id" if exc.target_type == TargetType.ORDER.value else "booking_id"
        return _error_response(
            exc.status_code,
            str(exc),
            target_type=exc.target_type,
            **{id_field: exc.target_id},
        )
    except PaymentWebhookError as exc:
        return _error_response(exc.status_code, str(exc))
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Database error while handling webhook")
        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Failed to update payment state",
        )

    return _ack_response(result)
