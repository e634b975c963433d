import hashlib
import logging
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from src.application.notifications import NotificationDispatcher
from src.application.reconciliation import ReconciliationEngine, ReconciliationOutcome
from src.domain.classifier import Classification, classify
from src.domain.events import extract_correlation_target, parse_webhook_event
from src.domain.exceptions import (
    PaymentWebhookError,
    ReconciliationPersistenceError,
    WebhookAuthenticationError,
    WebhookConfigurationError,
    WebhookDeadlineExceededError,
)
from src.domain.signature import ReplayGuard, WebhookSignatureVerifier
from src.infrastructure.config import WebhookSettings
from src.infrastructure.email import OrderConfirmationSender
from src.infrastructure.repositories.hall_booking_repository import HallBookingRepository
from src.infrastructure.repositories.order_repository import OrderRepository
from src.infrastructure.repositories.webhook_event_repository import WebhookEventRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WebhookResult:
    processed: bool
    event_id: Optional[str] = None
    reason: Optional[str] = None
    duplicate: bool = False
    outcome: Optional[ReconciliationOutcome] = None
    notified: bool = False


class Deadline:
    """Cooperative request deadline, checked between pipeline stages."""

    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._expires_at = clock() + seconds

    def check(self, stage: str) -> None:
        if self._clock() > self._expires_at:
            logger.error("Webhook deadline exceeded before %s", stage)
            raise WebhookDeadlineExceededError(stage)


class PaymentWebhookService:
    """Application service handling one payment webhook delivery."""

    def __init__(
        self,
        db: Session,
        settings: WebhookSettings,
        sender: OrderConfirmationSender,
        clock: Optional[Callable[[], float]] = None,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.db = db
        self.settings = settings
        self._clock = clock or time.time
        self._monotonic = monotonic

        orders = OrderRepository(db)
        self.events = WebhookEventRepository(db)
        self.engine = ReconciliationEngine(orders, HallBookingRepository(db))
        self.dispatcher = NotificationDispatcher(orders, sender)

    def authenticate(
        self,
        raw_body: bytes,
        signature: Optional[str],
        webhook_id: Optional[str],
        timestamp: Optional[str],
    ) -> None:
        if not self.settings.secret_configured:
            logger.error("Webhook secret not configured, refusing event")
            raise WebhookConfigurationError("Webhook secret not configured")

        if not signature or not webhook_id or not timestamp:
            logger.warning("Webhook rejected: missing signature headers")
            raise WebhookAuthenticationError("Missing webhook signature headers")

        ReplayGuard(self.settings.timestamp_tolerance_seconds, self._clock).check(timestamp)

        verifier = WebhookSignatureVerifier(self.settings.webhook_secret)
        if not verifier.verify(raw_body, signature, webhook_id, timestamp):
            raise WebhookAuthenticationError("Invalid signature")

    def handle(
        self,
        raw_body: bytes,
        signature: Optional[str],
        webhook_id: Optional[str],
        timestamp: Optional[str],
    ) -> WebhookResult:
        deadline = Deadline(self.settings.request_timeout_seconds, self._monotonic)

        self.authenticate(raw_body, signature, webhook_id, timestamp)
        event = parse_webhook_event(raw_body)

        logger.info(
            "Webhook event %s received (%s)",
            event.id,
            event.type,
            extra={"event_id": event.id, "event_type": event.type},
        )

        dedupe_ttl = timedelta(hours=self.settings.dedupe_ttl_hours)

        deadline.check("deduplication")
        try:
            seen = self.events.get_recent(event.id, dedupe_ttl)
        except SQLAlchemyError as exc:
            raise ReconciliationPersistenceError("Failed to read webhook event log") from exc

        if seen is not None:
            logger.info("Webhook event %s already processed, skipping", event.id)
            return WebhookResult(
                processed=False, event_id=event.id, reason="duplicate", duplicate=True
            )

        target = extract_correlation_target(event)
        if target is None or target.target_type is None:
            return WebhookResult(processed=False, event_id=event.id, reason="no_target")

        classification = classify(event.type, event.status)
        if classification is Classification.UNHANDLED:
            logger.info(
                "Webhook event type %s (status=%s) not handled",
                event.type,
                event.status,
            )
            return WebhookResult(
                processed=False, event_id=event.id, reason="unhandled_event"
            )

        deadline.check("reconciliation")
        try:
            outcome = self.engine.reconcile(target, classification, event.type)
            if outcome is None:
                return WebhookResult(
                    processed=False, event_id=event.id, reason="unhandled_event"
                )

            self.events.record(
                event_id=event.id,
                event_type=event.type,
                target_type=outcome.target_type.value,
                target_id=outcome.target_id,
                classification=classification.value,
                payload_hash=hashlib.sha256(raw_body).hexdigest(),
                ttl=dedupe_ttl,
            )

            deadline.check("commit")
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.info("Webhook event %s committed by a concurrent delivery", event.id)
            return WebhookResult(
                processed=False, event_id=event.id, reason="duplicate", duplicate=True
            )
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Failed to commit reconciliation for event %s", event.id)
            raise ReconciliationPersistenceError("Failed to update payment state") from exc
        except PaymentWebhookError:
            self.db.rollback()
            raise

        notified = self.dispatcher.dispatch(outcome)

        return WebhookResult(
            processed=True,
            event_id=event.id,
            outcome=outcome,
            notified=notified,
        )
