import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from src.domain.classifier import Classification
from src.domain.events import CorrelationTarget
from src.domain.exceptions import (
    ReconciliationPersistenceError,
    ReconciliationTargetNotFoundError,
)
from src.domain.state_machine import PaymentStateMachine, PaymentStatus, TargetType
from src.infrastructure.repositories.hall_booking_repository import HallBookingRepository
from src.infrastructure.repositories.order_repository import OrderRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconciliationOutcome:
    target_type: TargetType
    target_id: str
    previous_status: Optional[str]
    new_status: Optional[str]
    new_payment_status: Optional[str] = None
    should_notify: bool = False
    applied: bool = True


class ReconciliationEngine:
    """
    Applies a classified payment event to the order or hall booking
    it references. Writes are conditional so a redelivered or
    out-of-order event cannot undo a settled payment.
    """

    def __init__(
        self,
        orders: OrderRepository,
        hall_bookings: HallBookingRepository,
    ):
        self.orders = orders
        self.hall_bookings = hall_bookings

    def reconcile(
        self,
        target: CorrelationTarget,
        classification: Classification,
        event_type: str,
    ) -> Optional[ReconciliationOutcome]:
        """
        Returns None when the event leaves the target unchanged.
        """
        if target.target_type is TargetType.ORDER:
            return self._reconcile_order(target.target_id, classification, event_type)
        if target.target_type is TargetType.HALL_BOOKING:
            return self._reconcile_hall_booking(target.target_id, classification)
        return None

    def _reconcile_order(
        self,
        order_id: str,
        classification: Classification,
        event_type: str,
    ) -> Optional[ReconciliationOutcome]:
        transition = PaymentStateMachine.order_transition(classification, event_type)
        if transition is None:
            return None

        try:
            order = self.orders.get_by_id(order_id)
        except SQLAlchemyError as exc:
            raise ReconciliationPersistenceError("Failed to load order") from exc

        if order is None:
            logger.warning("Order %s referenced by webhook not found", order_id)
            raise ReconciliationTargetNotFoundError(TargetType.ORDER.value, order_id)

        previous_status = order.status
        previous_payment_status = order.payment_status

        if PaymentStateMachine.is_order_settled(previous_payment_status):
            logger.info(
                "Order %s already paid, ignoring %s",
                order_id,
                classification.value,
                extra={"order_id": order_id, "classification": classification.value},
            )
            return ReconciliationOutcome(
                target_type=TargetType.ORDER,
                target_id=order_id,
                previous_status=previous_status,
                new_status=previous_status,
                new_payment_status=previous_payment_status,
                applied=False,
            )

        try:
            applied = self.orders.apply_payment_transition(
                order_id,
                transition.status,
                transition.payment_status,
            )
        except SQLAlchemyError as exc:
            raise ReconciliationPersistenceError("Failed to update order") from exc

        if not applied:
            # Another delivery settled the order between our read and write.
            logger.info("Order %s was settled concurrently", order_id)
            return ReconciliationOutcome(
                target_type=TargetType.ORDER,
                target_id=order_id,
                previous_status=previous_status,
                new_status=previous_status,
                new_payment_status=PaymentStatus.PAID.value,
                applied=False,
            )

        logger.info(
            "Order %s moved %s/%s -> %s/%s",
            order_id,
            previous_status,
            previous_payment_status,
            transition.status.value,
            transition.payment_status.value,
            extra={"order_id": order_id, "classification": classification.value},
        )
        return ReconciliationOutcome(
            target_type=TargetType.ORDER,
            target_id=order_id,
            previous_status=previous_status,
            new_status=transition.status.value,
            new_payment_status=transition.payment_status.value,
            should_notify=transition.notify,
        )

    def _reconcile_hall_booking(
        self,
        booking_id: str,
        classification: Classification,
    ) -> Optional[ReconciliationOutcome]:
        new_status = PaymentStateMachine.hall_booking_transition(classification)
        if new_status is None:
            return None

        try:
            booking = self.hall_bookings.get_by_id(booking_id)
        except SQLAlchemyError as exc:
            raise ReconciliationPersistenceError("Failed to load hall booking") from exc

        if booking is None:
            logger.warning("Hall booking %s referenced by webhook not found", booking_id)
            raise ReconciliationTargetNotFoundError(
                TargetType.HALL_BOOKING.value, booking_id
            )

        previous_status = booking.status

        if PaymentStateMachine.is_hall_booking_settled(previous_status):
            logger.info(
                "Hall booking %s already %s, ignoring %s",
                booking_id,
                previous_status,
                classification.value,
            )
            return ReconciliationOutcome(
                target_type=TargetType.HALL_BOOKING,
                target_id=booking_id,
                previous_status=previous_status,
                new_status=previous_status,
                applied=False,
            )

        try:
            applied = self.hall_bookings.apply_payment_transition(booking_id, new_status)
        except SQLAlchemyError as exc:
            raise ReconciliationPersistenceError("Failed to update hall booking") from exc

        logger.info(
            "Hall booking %s moved %s -> %s",
            booking_id,
            previous_status,
            new_status.value if applied else previous_status,
            extra={"booking_id": booking_id, "classification": classification.value},
        )
        return ReconciliationOutcome(
            target_type=TargetType.HALL_BOOKING,
            target_id=booking_id,
            previous_status=previous_status,
            new_status=new_status.value if applied else previous_status,
            applied=applied,
        )
