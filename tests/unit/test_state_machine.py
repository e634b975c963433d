# tests/unit/test_state_machine.py

import pytest

from src.domain.classifier import Classification
from src.domain.state_machine import (
    HallBookingStatus,
    OrderStatus,
    PaymentStateMachine,
    PaymentStatus,
)


# ---------------------
# ORDER TRANSITIONS
# ---------------------

def test_success_confirms_and_notifies():
    transition = PaymentStateMachine.order_transition(
        Classification.SUCCESS, "payment.succeeded"
    )

    assert transition.status is OrderStatus.CONFIRMED
    assert transition.payment_status is PaymentStatus.PAID
    assert transition.notify is True


def test_failed_event_type_records_failed_payment():
    transition = PaymentStateMachine.order_transition(
        Classification.FAILURE, "payment.failed"
    )

    assert transition.status is OrderStatus.CANCELLED
    assert transition.payment_status is PaymentStatus.FAILED
    assert transition.notify is False


def test_other_failure_records_cancelled_payment():
    transition = PaymentStateMachine.order_transition(
        Classification.FAILURE, "checkout.cancelled"
    )

    assert transition.payment_status is PaymentStatus.CANCELLED


def test_expired_records_expired_payment():
    transition = PaymentStateMachine.order_transition(
        Classification.EXPIRED, "checkout.expired"
    )

    assert transition.status is OrderStatus.CANCELLED
    assert transition.payment_status is PaymentStatus.EXPIRED


def test_unhandled_leaves_order_unchanged():
    assert PaymentStateMachine.order_transition(
        Classification.UNHANDLED, "subscription.created"
    ) is None


def test_paid_order_is_settled():
    assert PaymentStateMachine.is_order_settled("paid")
    assert not PaymentStateMachine.is_order_settled("pending")
    assert not PaymentStateMachine.is_order_settled(None)


# ---------------------
# HALL BOOKING TRANSITIONS
# ---------------------

def test_hall_booking_success_awaits_approval():
    assert (
        PaymentStateMachine.hall_booking_transition(Classification.SUCCESS)
        is HallBookingStatus.PENDING_APPROVAL
    )


def test_hall_booking_failure_cancels():
    assert (
        PaymentStateMachine.hall_booking_transition(Classification.FAILURE)
        is HallBookingStatus.CANCELLED
    )


def test_hall_booking_has_no_expired_transition():
    assert PaymentStateMachine.hall_booking_transition(Classification.EXPIRED) is None
    assert PaymentStateMachine.hall_booking_transition(Classification.UNHANDLED) is None


@pytest.mark.parametrize(
    "status",
    ["pending_approval", "confirmed", "completed", "deposit_refunded", "rejected"],
)
def test_bookings_past_payment_are_settled(status):
    assert PaymentStateMachine.is_hall_booking_settled(status)


@pytest.mark.parametrize("status", ["draft", "pending_payment", "payment_processing", "cancelled"])
def test_unpaid_bookings_are_not_settled(status):
    assert not PaymentStateMachine.is_hall_booking_settled(status)


def test_invalid_type_guard():
    with pytest.raises(TypeError):
        PaymentStateMachine.order_transition(
            "success",  # invalid type
            "payment.succeeded",
        )
