# src/domain/events.py

"""Webhook event model and correlation-target extraction.

Gateways are not consistent about where checkout metadata lives, so the
identifiers that tie an event to an order or hall booking are searched in
a fixed list of locations. The first location carrying either identifier
wins.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from src.domain.exceptions import MalformedEventError
from src.domain.state_machine import TargetType

logger = logging.getLogger(__name__)

HALL_BOOKING_MARKER = "hall_booking"


class WebhookEvent(BaseModel):
    """A payment gateway webhook event."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1)
    created_date: Optional[datetime] = Field(default=None, alias="createdDate")
    payload: dict[str, Any]
    # Only read through _as_dict; a non-object value is ignored, not rejected.
    metadata: Any = None

    @field_validator("created_date", mode="before")
    @classmethod
    def _lenient_created_date(cls, value: Any) -> Any:
        if value is None or isinstance(value, datetime):
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            # Unix time; pydantic converts it.
            return value
        if isinstance(value, str):
            try:
                return datetime.fromisoformat(value.replace("Z", "+00:00"))
            except ValueError:
                pass
        logger.warning("Ignoring unparseable createdDate %r", value)
        return None

    @property
    def status(self) -> Optional[str]:
        status = self.payload.get("status")
        return status if isinstance(status, str) else None


@dataclass(frozen=True)
class CorrelationTarget:
    source: str
    order_id: Optional[str] = None
    booking_id: Optional[str] = None
    booking_type: Optional[str] = None

    @property
    def target_type(self) -> Optional[TargetType]:
        if self.booking_id and self.booking_type == HALL_BOOKING_MARKER:
            return TargetType.HALL_BOOKING
        if self.order_id:
            return TargetType.ORDER
        return None

    @property
    def target_id(self) -> Optional[str]:
        target_type = self.target_type
        if target_type is TargetType.HALL_BOOKING:
            return self.booking_id
        if target_type is TargetType.ORDER:
            return self.order_id
        return None


def parse_webhook_event(raw_body: bytes) -> WebhookEvent:
    try:
        data = json.loads(raw_body)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MalformedEventError("Invalid JSON payload") from exc

    if not isinstance(data, dict):
        raise MalformedEventError("Invalid webhook event structure")

    try:
        return WebhookEvent.model_validate(data)
    except ValidationError as exc:
        fields = sorted({str(err["loc"][0]) for err in exc.errors() if err["loc"]})
        logger.warning(
            "Webhook event failed validation on fields: %s",
            ", ".join(fields),
        )
        raise MalformedEventError("Invalid webhook event structure") from exc


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _identifier(metadata: dict, *keys: str) -> Optional[str]:
    for key in keys:
        value = metadata.get(key)
        if isinstance(value, bool) or value is None:
            continue
        if isinstance(value, (int, float)):
            value = str(value)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _payload_metadata(event: WebhookEvent) -> dict:
    return _as_dict(event.payload.get("metadata"))


def _event_metadata(event: WebhookEvent) -> dict:
    return _as_dict(event.metadata)


def _payload_data_metadata(event: WebhookEvent) -> dict:
    return _as_dict(_as_dict(event.payload.get("data")).get("metadata"))


def _payload_object_metadata(event: WebhookEvent) -> dict:
    return _as_dict(_as_dict(event.payload.get("object")).get("metadata"))


_METADATA_LOCATIONS: Tuple[Tuple[str, Callable[[WebhookEvent], dict]], ...] = (
    ("payload.metadata", _payload_metadata),
    ("metadata", _event_metadata),
    ("payload.data.metadata", _payload_data_metadata),
    ("payload.object.metadata", _payload_object_metadata),
)


def _read_identifiers(source: str, metadata: dict) -> Optional[CorrelationTarget]:
    order_id = _identifier(metadata, "orderId", "order_id")
    booking_id = _identifier(metadata, "bookingId", "booking_id")
    if not order_id and not booking_id:
        return None

    return CorrelationTarget(
        source=source,
        order_id=order_id,
        booking_id=booking_id,
        booking_type=_identifier(metadata, "bookingType", "booking_type"),
    )


def extract_correlation_target(event: WebhookEvent) -> Optional[CorrelationTarget]:
    for source, locate in _METADATA_LOCATIONS:
        target = _read_identifiers(source, locate(event))
        if target is not None:
            logger.debug(
                "Correlation identifiers found in %s",
                source,
                extra={"event_id": event.id, "source": source},
            )
            return target

    logger.info(
        "No order or booking identifier in event %s",
        event.id,
        extra={"event_id": event.id, "event_type": event.type},
    )
    return None
