# tests/unit/test_state_machine.py

import pytest

from tableside.domain.exceptions import InvalidStateError
from tableside.domain.state_machine import (
    BookingStateMachine,
    BookingStatus,
    OrderStateMachine,
    OrderStatus,
    PaymentStateMachine,
    PaymentStatus,
)


# ---------------------
# VALID TRANSITIONS
# ---------------------

def test_booking_happy_path():
    assert BookingStateMachine.can_transition(
        BookingStatus.PENDING,
        BookingStatus.CONFIRMED,
    )

    assert BookingStateMachine.can_transition(
        BookingStatus.CONFIRMED,
        BookingStatus.IN_PROGRESS,
    )

    assert BookingStateMachine.can_transition(
        BookingStatus.IN_PROGRESS,
        BookingStatus.COMPLETED,
    )


def test_walk_in_check_in_from_pending():
    assert BookingStateMachine.can_transition(
        BookingStatus.PENDING,
        BookingStatus.IN_PROGRESS,
    )


def test_order_kitchen_path():
    path = [
        OrderStatus.PENDING,
        OrderStatus.CONFIRMED,
        OrderStatus.PREPARING,
        OrderStatus.READY,
        OrderStatus.SERVED,
        OrderStatus.COMPLETED,
    ]
    for current, following in zip(path, path[1:]):
        OrderStateMachine.validate_transition(current, following)


def test_failed_payment_can_be_retried():
    assert PaymentStateMachine.can_transition(
        PaymentStatus.FAILED,
        PaymentStatus.PENDING,
    )


# ---------------------
# INVALID TRANSITIONS
# ---------------------

def test_cannot_complete_without_check_in():
    with pytest.raises(InvalidStateError):
        BookingStateMachine.validate_transition(
            BookingStatus.CONFIRMED,
            BookingStatus.COMPLETED,
        )


def test_cannot_cancel_in_progress_booking():
    with pytest.raises(InvalidStateError) as exc_info:
        BookingStateMachine.validate_transition(
            BookingStatus.IN_PROGRESS,
            BookingStatus.CANCELLED,
        )

    assert exc_info.value.entity == "booking"
    assert exc_info.value.from_state == "IN_PROGRESS"
    assert exc_info.value.to_state == "CANCELLED"


def test_order_cannot_skip_kitchen():
    with pytest.raises(InvalidStateError):
        OrderStateMachine.validate_transition(
            OrderStatus.CONFIRMED,
            OrderStatus.READY,
        )


def test_preparing_order_cannot_be_cancelled():
    with pytest.raises(InvalidStateError):
        OrderStateMachine.validate_transition(
            OrderStatus.PREPARING,
            OrderStatus.CANCELLED,
        )


@pytest.mark.parametrize(
    "status",
    [BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.NO_SHOW],
)
def test_terminal_booking_states(status):
    assert BookingStateMachine.is_terminal(status)

    with pytest.raises(InvalidStateError):
        BookingStateMachine.validate_transition(
            status,
            BookingStatus.CONFIRMED,
        )


def test_terminal_payment_states():
    assert PaymentStateMachine.is_terminal(PaymentStatus.REFUNDED)
    assert PaymentStateMachine.is_terminal(PaymentStatus.CANCELLED)
    assert not PaymentStateMachine.is_terminal(PaymentStatus.SUCCESS)


def test_every_transition_target_is_a_known_state():
    for machine in (BookingStateMachine, OrderStateMachine, PaymentStateMachine):
        for status in machine.status_type:
            for target in machine.get_allowed_transitions(status):
                assert isinstance(target, machine.status_type)


# ---------------------
# PARSING
# ---------------------

def test_parse_accepts_any_case():
    assert OrderStateMachine.parse(OrderStatus.PENDING, " preparing ") == OrderStatus.PREPARING


def test_parse_unknown_status_is_invalid_state():
    with pytest.raises(InvalidStateError) as exc_info:
        OrderStateMachine.parse(OrderStatus.PENDING, "EATEN")

    assert exc_info.value.from_state == "PENDING"
    assert exc_info.value.to_state == "EATEN"


def test_invalid_type_guard():
    with pytest.raises(TypeError):
        BookingStateMachine.validate_transition(
            "PENDING",  # invalid type
            BookingStatus.CONFIRMED,
        )

    with pytest.raises(TypeError):
        BookingStateMachine.can_transition(
            OrderStatus.PENDING,  # another machine's status
            BookingStatus.CONFIRMED,
        )
