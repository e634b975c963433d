# src/infrastructure/repositories/hall_booking_repository.py

from sqlalchemy.orm import Session
from sqlalchemy import select, update

from src.domain.state_machine import HallBookingStatus, PaymentStateMachine
from src.infrastructure.db.models import HallBooking


class HallBookingRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(
        self,
        booking_id: str,
    ) -> HallBooking | None:

        stmt = select(HallBooking).where(HallBooking.id == booking_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def apply_payment_transition(
        self,
        booking_id: str,
        new_status: HallBookingStatus,
    ) -> bool:
        """
        Conditional write: bookings already past payment are left alone.
        Returns True if a row was changed.
        """

        stmt = (
            update(HallBooking)
            .where(HallBooking.id == booking_id)
            .where(
                HallBooking.status.not_in(
                    sorted(PaymentStateMachine.settled_hall_booking_statuses())
                )
            )
            .values(status=new_status.value)
            .execution_options(synchronize_session="fetch")
        )
        result = self.db.execute(stmt)
        return result.rowcount == 1
