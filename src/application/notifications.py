import logging

from src.application.reconciliation import ReconciliationOutcome
from src.domain.state_machine import TargetType
from src.infrastructure.email import ConfirmationItem, OrderConfirmationSender
from src.infrastructure.repositories.order_repository import OrderRepository

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """
    Post-commit side effects of a reconciliation.

    Everything here is best effort: the payment state is already
    committed, so failures are logged and never raised.
    """

    def __init__(self, orders: OrderRepository, sender: OrderConfirmationSender):
        self.orders = orders
        self.sender = sender

    def dispatch(self, outcome: ReconciliationOutcome) -> bool:
        if not outcome.should_notify or outcome.target_type is not TargetType.ORDER:
            return False

        try:
            return self._send_order_confirmation(outcome.target_id)
        except Exception:
            logger.warning(
                "Order confirmation for %s failed",
                outcome.target_id,
                exc_info=True,
                extra={"order_id": outcome.target_id},
            )
            return False

    def _send_order_confirmation(self, order_id: str) -> bool:
        order = self.orders.get_by_id(order_id)
        if order is None:
            logger.warning("Order %s disappeared before confirmation email", order_id)
            return False

        profile = self.orders.get_owner_profile(order)
        if profile is None or not profile.email:
            logger.debug("Order %s has no customer email, skipping confirmation", order_id)
            return False

        items = [
            ConfirmationItem(name=item.name, quantity=item.quantity, price=item.price)
            for item in self.orders.list_items(order_id)
        ]
        name = " ".join(part for part in (profile.first_name, profile.last_name) if part)

        sent = self.sender.send_order_confirmation(
            order_id=order.id,
            total=order.total_amount,
            email=profile.email,
            name=name or None,
            items=items,
        )
        if sent:
            logger.info("Order confirmation sent for %s", order_id)
        else:
            logger.warning("Order confirmation for %s was not accepted", order_id)
        return sent
