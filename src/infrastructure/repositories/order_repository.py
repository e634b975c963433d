# src/infrastructure/repositories/order_repository.py

from sqlalchemy.orm import Session
from sqlalchemy import or_, select, update

from src.domain.state_machine import OrderStatus, PaymentStatus
from src.infrastructure.db.models import Order, OrderItem, Profile


class OrderRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(
        self,
        order_id: str,
    ) -> Order | None:

        stmt = select(Order).where(Order.id == order_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def apply_payment_transition(
        self,
        order_id: str,
        status: OrderStatus,
        payment_status: PaymentStatus,
    ) -> bool:
        """
        Conditional write: never touches an order that is already paid.
        Returns True if a row was changed.
        """

        stmt = (
            update(Order)
            .where(Order.id == order_id)
            .where(
                or_(
                    Order.payment_status.is_(None),
                    Order.payment_status != PaymentStatus.PAID.value,
                )
            )
            .values(
                status=status.value,
                payment_status=payment_status.value,
            )
            .execution_options(synchronize_session="fetch")
        )
        result = self.db.execute(stmt)
        return result.rowcount == 1

    def get_owner_profile(
        self,
        order: Order,
    ) -> Profile | None:

        if not order.user_id:
            return None

        stmt = select(Profile).where(Profile.id == order.user_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def list_items(
        self,
        order_id: str,
    ) -> list[OrderItem]:

        stmt = (
            select(OrderItem)
            .where(OrderItem.order_id == order_id)
            .order_by(OrderItem.name)
        )
        return list(self.db.execute(stmt).scalars().all())
