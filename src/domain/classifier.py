# src/domain/classifier.py

import logging
from enum import Enum
from typing import Dict, FrozenSet, Optional

logger = logging.getLogger(__name__)


class Classification(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    EXPIRED = "expired"
    UNHANDLED = "unhandled"


# Event types documented by the gateway.
_KNOWN_EVENT_TYPES: Dict[str, Classification] = {
    "payment.succeeded": Classification.SUCCESS,
    "checkout.succeeded": Classification.SUCCESS,
    "checkout.completed": Classification.SUCCESS,
    "payment.failed": Classification.FAILURE,
    "payment.cancelled": Classification.FAILURE,
    "checkout.failed": Classification.FAILURE,
    "checkout.cancelled": Classification.FAILURE,
    "payment.expired": Classification.EXPIRED,
    "checkout.expired": Classification.EXPIRED,
}

# Known types whose outcome depends on the payload status.
_STATUS_DRIVEN_EVENT_TYPES: FrozenSet[str] = frozenset(
    {
        "checkout.payment_received",
        "payment.updated",
    }
)


def classify(event_type: str, status: Optional[str] = None) -> Classification:
    """
    Map a gateway event type and payload status to a classification.

    Exact known event types are resolved from a table. Anything else goes
    through substring rules so new gateway event names keep working; a
    warning is logged whenever those rules produce an actionable result
    for a type we have not seen documented.
    """
    known = _KNOWN_EVENT_TYPES.get(event_type)
    if known is not None:
        return known

    classification = classify_by_rules(event_type, status)

    if (
        event_type not in _STATUS_DRIVEN_EVENT_TYPES
        and classification is not Classification.UNHANDLED
    ):
        logger.warning(
            "Classified unknown event type %s (status=%s) as %s by substring rules",
            event_type,
            status,
            classification.value,
            extra={"event_type": event_type, "classification": classification.value},
        )

    return classification


def classify_by_rules(event_type: str, status: Optional[str] = None) -> Classification:
    """
    Substring rules, evaluated in order: success, failure, expired.
    """
    if (
        ("payment" in event_type and status == "succeeded")
        or ("checkout" in event_type and status == "completed")
        or "succeeded" in event_type
        or "completed" in event_type
    ):
        return Classification.SUCCESS

    if (
        "cancelled" in event_type
        or "failed" in event_type
        or status in ("cancelled", "failed")
    ):
        return Classification.FAILURE

    if "expired" in event_type or status == "expired":
        return Classification.EXPIRED

    return Classification.UNHANDLED
