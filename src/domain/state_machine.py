# src/domain/state_machine.py

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional

from src.domain.classifier import Classification


class TargetType(str, Enum):
    ORDER = "order"
    HALL_BOOKING = "hall_booking"


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class HallBookingStatus(str, Enum):
    DRAFT = "draft"
    PENDING_PAYMENT = "pending_payment"
    PAYMENT_PROCESSING = "payment_processing"
    PENDING_APPROVAL = "pending_approval"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    DEPOSIT_REFUNDED = "deposit_refunded"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


@dataclass(frozen=True)
class OrderTransition:
    status: OrderStatus
    payment_status: PaymentStatus
    notify: bool = False


class PaymentStateMachine:
    """
    Maps a webhook classification onto the next state of an
    order or a hall booking.
    Defines which current states may still be rewritten by a webhook.
    """

    _ORDER_TRANSITIONS: Dict[Classification, OrderTransition] = {
        Classification.SUCCESS: OrderTransition(
            OrderStatus.CONFIRMED, PaymentStatus.PAID, notify=True
        ),
        Classification.FAILURE: OrderTransition(
            OrderStatus.CANCELLED, PaymentStatus.CANCELLED
        ),
        Classification.EXPIRED: OrderTransition(
            OrderStatus.CANCELLED, PaymentStatus.EXPIRED
        ),
    }

    _HALL_BOOKING_TRANSITIONS: Dict[Classification, HallBookingStatus] = {
        Classification.SUCCESS: HallBookingStatus.PENDING_APPROVAL,
        Classification.FAILURE: HallBookingStatus.CANCELLED,
    }

    # Bookings whose payment has already been settled.
    _SETTLED_HALL_BOOKING_STATUSES: FrozenSet[HallBookingStatus] = frozenset(
        {
            HallBookingStatus.PENDING_APPROVAL,
            HallBookingStatus.CONFIRMED,
            HallBookingStatus.COMPLETED,
            HallBookingStatus.DEPOSIT_REFUNDED,
            HallBookingStatus.REJECTED,
        }
    )

    @classmethod
    def order_transition(
        cls,
        classification: Classification,
        event_type: str,
    ) -> Optional[OrderTransition]:
        """
        Returns the order transition for a classification, or None
        when the event leaves the order unchanged.
        """
        cls._ensure_valid_classification(classification)

        if classification is Classification.FAILURE and "failed" in event_type:
            return OrderTransition(OrderStatus.CANCELLED, PaymentStatus.FAILED)

        return cls._ORDER_TRANSITIONS.get(classification)

    @classmethod
    def hall_booking_transition(
        cls,
        classification: Classification,
    ) -> Optional[HallBookingStatus]:
        """
        Returns the next hall booking status, or None when unchanged.
        """
        cls._ensure_valid_classification(classification)
        return cls._HALL_BOOKING_TRANSITIONS.get(classification)

    @staticmethod
    def is_order_settled(payment_status: Optional[str]) -> bool:
        """
        A paid order is never rewritten by a later webhook.
        """
        return payment_status == PaymentStatus.PAID.value

    @classmethod
    def is_hall_booking_settled(cls, status: Optional[str]) -> bool:
        return status in cls.settled_hall_booking_statuses()

    @classmethod
    def settled_hall_booking_statuses(cls) -> FrozenSet[str]:
        return frozenset(s.value for s in cls._SETTLED_HALL_BOOKING_STATUSES)

    @staticmethod
    def _ensure_valid_classification(classification: Classification) -> None:
        if not isinstance(classification, Classification):
            raise TypeError(
                f"Expected Classification, got {type(classification)}"
            )
