# src/infrastructure/repositories/webhook_event_repository.py

from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session
from sqlalchemy import delete, select

from src.infrastructure.db.models import ProcessedWebhookEvent


class WebhookEventRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_recent(
        self,
        event_id: str,
        ttl: timedelta,
        now: datetime | None = None,
    ) -> ProcessedWebhookEvent | None:

        cutoff = (now or datetime.now(timezone.utc)) - ttl
        stmt = (
            select(ProcessedWebhookEvent)
            .where(ProcessedWebhookEvent.event_id == event_id)
            .where(ProcessedWebhookEvent.processed_at >= cutoff)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def record(
        self,
        event_id: str,
        event_type: str,
        target_type: str,
        target_id: str,
        classification: str,
        payload_hash: str,
        ttl: timedelta,
        now: datetime | None = None,
    ) -> ProcessedWebhookEvent:
        """
        Only an expired row for the same id is replaced. A live one is left
        in place so a concurrent delivery fails the unique constraint.
        """

        now = now or datetime.now(timezone.utc)
        self.db.execute(
            delete(ProcessedWebhookEvent)
            .where(ProcessedWebhookEvent.event_id == event_id)
            .where(ProcessedWebhookEvent.processed_at < now - ttl)
            .execution_options(synchronize_session=False)
        )

        event = ProcessedWebhookEvent(
            event_id=event_id,
            event_type=event_type,
            target_type=target_type,
            target_id=target_id,
            classification=classification,
            payload_hash=payload_hash,
            processed_at=now,
        )
        self.db.add(event)
        return event

    def purge_expired(
        self,
        ttl: timedelta,
        now: datetime | None = None,
    ) -> int:

        cutoff = (now or datetime.now(timezone.utc)) - ttl
        result = self.db.execute(
            delete(ProcessedWebhookEvent).where(
                ProcessedWebhookEvent.processed_at < cutoff
            ).execution_options(synchronize_session=False)
        )
        return result.rowcount
