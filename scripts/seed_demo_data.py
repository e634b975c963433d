from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import delete

from src.infrastructure.db.models import Base, HallBooking, Order, OrderItem, Profile
from src.infrastructure.db.session import SessionLocal, engine


def seed_orders(db) -> None:
    db.merge(
        Profile(
            id="demo-user-1",
            email="guest@example.com",
            first_name="Demo",
            last_name="Customer",
        )
    )

    order_defs = [
        {
            "id": "LL1031",
            "user_id": "demo-user-1",
            "total_amount": Decimal("150.00"),
            "delivery_type": "pickup",
            "items": [
                {"name": "Flat White", "quantity": 2, "price": Decimal("38.00")},
                {"name": "Chicken Mayo Toastie", "quantity": 1, "price": Decimal("74.00")},
            ],
        },
        {
            "id": "LL1032",
            "user_id": None,
            "total_amount": Decimal("125.00"),
            "delivery_type": "delivery",
            "items": [
                {"name": "Breakfast Wrap", "quantity": 1, "price": Decimal("125.00")},
            ],
        },
    ]

    for item in order_defs:
        db.execute(delete(OrderItem).where(OrderItem.order_id == item["id"]))
        db.merge(
            Order(
                id=item["id"],
                user_id=item["user_id"],
                status="pending",
                payment_status="pending",
                total_amount=item["total_amount"],
                delivery_type=item["delivery_type"],
            )
        )
        db.flush()

        for line in item["items"]:
            db.add(OrderItem(order_id=item["id"], **line))


def seed_hall_bookings(db) -> None:
    db.merge(
        HallBooking(
            id="HB-DEMO-1",
            status="pending_payment",
            applicant_email="events@example.com",
            applicant_name="Demo Applicant",
            event_date=date.today() + timedelta(days=30),
        )
    )


def main() -> None:
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        seed_orders(db)
        seed_hall_bookings(db)
        db.commit()
        print("Seed complete: orders LL1031, LL1032 and hall booking HB-DEMO-1 reset to unpaid.")
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    main()
