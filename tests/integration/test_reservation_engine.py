from datetime import date, datetime, timezone

import pytest

from tableside.domain.exceptions import (
    ACTIVE_BOOKING_EXISTS,
    DUPLICATE_TABLE_NUMBER,
    SLOT_TAKEN,
    TABLE_UNAVAILABLE,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from tableside.domain.state_machine import BookingStatus, TableStatus
from tableside.infrastructure.db.models import DiningTable
from tableside.infrastructure.repositories.booking_repository import BookingRepository

BOOKING_DATE = date(2024, 6, 1)


def _book(reservations, customer_id, table, slot="18:00", guests=2, booking_date=BOOKING_DATE):
    return reservations.create_booking(
        customer_id=customer_id,
        table_id=table.id,
        booking_date=booking_date,
        slot=slot,
        number_of_guests=guests,
    )


def test_first_booking_reserves_table_second_customer_rejected(reservations, tables):
    t1 = tables["T1"]

    booking = _book(reservations, "cust-A", t1)

    assert booking.status == BookingStatus.PENDING
    assert reservations.get_table(t1.id).status == TableStatus.RESERVED

    with pytest.raises(ConflictError) as exc_info:
        _book(reservations, "cust-B", t1)
    assert exc_info.value.code == TABLE_UNAVAILABLE

    assert reservations.customer_bookings("cust-B") == []


def test_customer_cannot_hold_two_active_bookings(reservations, tables):
    _book(reservations, "cust-A", tables["T1"])

    with pytest.raises(ConflictError) as exc_info:
        _book(reservations, "cust-A", tables["T2"], slot="20:00")

    assert exc_info.value.code == ACTIVE_BOOKING_EXISTS
    assert reservations.get_table(tables["T2"].id).status == TableStatus.AVAILABLE


def test_customer_may_book_again_after_cancelling(reservations, tables):
    first = _book(reservations, "cust-A", tables["T1"])
    reservations.cancel_booking(first.id, actor_id="cust-A")

    second = _book(reservations, "cust-A", tables["T2"])

    assert second.status == BookingStatus.PENDING
    assert reservations.active_booking("cust-A").id == second.id


def test_slot_conflict_is_reported_when_table_was_released(reservations, tables, session_factory):
    t1 = tables["T1"]
    _book(reservations, "cust-A", t1)

    # staff put the table back on the floor while the booking is still active
    with session_factory() as db:
        db.get(DiningTable, t1.id).status = TableStatus.AVAILABLE
        db.commit()

    with pytest.raises(ConflictError) as exc_info:
        _book(reservations, "cust-B", t1)
    assert exc_info.value.code == SLOT_TAKEN


def test_unique_index_rejects_second_active_booking_for_customer(reservations, tables, monkeypatch):
    _book(reservations, "cust-A", tables["T1"])
    # another process committed between the count and the insert
    monkeypatch.setattr(BookingRepository, "count_active_for_customer", lambda self, customer_id: 0)

    with pytest.raises(ConflictError) as exc_info:
        _book(reservations, "cust-A", tables["T2"], slot="20:00")

    assert exc_info.value.code == ACTIVE_BOOKING_EXISTS
    assert reservations.get_table(tables["T2"].id).status == TableStatus.AVAILABLE
    assert len(reservations.customer_bookings("cust-A")) == 1


def test_unique_index_rejects_second_active_booking_for_slot(
    reservations, tables, session_factory, monkeypatch
):
    t1 = tables["T1"]
    first = _book(reservations, "cust-A", t1)
    with session_factory() as db:
        db.get(DiningTable, t1.id).status = TableStatus.AVAILABLE
        db.commit()
    monkeypatch.setattr(BookingRepository, "find_conflicts", lambda self, *args, **kwargs: [])

    with pytest.raises(ConflictError) as exc_info:
        _book(reservations, "cust-B", t1)

    assert exc_info.value.code == SLOT_TAKEN
    assert reservations.get_table(t1.id).status == TableStatus.AVAILABLE
    assert reservations.customer_bookings("cust-B") == []
    assert reservations.get_booking(first.id).status == BookingStatus.PENDING


def test_booking_validation(reservations, tables):
    with pytest.raises(ValidationError):
        _book(reservations, "cust-A", tables["T2"], guests=3)

    with pytest.raises(ValidationError):
        _book(reservations, "cust-A", tables["T1"], guests=0)

    with pytest.raises(ValidationError):
        _book(reservations, "cust-A", tables["T1"], slot="  ")

    with pytest.raises(ValidationError):
        _book(reservations, "cust-A", tables["T1"], booking_date=date(2024, 4, 30))

    with pytest.raises(NotFoundError):
        reservations.create_booking("cust-A", "missing", BOOKING_DATE, "18:00", 2)

    # nothing was left behind by the rejected attempts
    assert reservations.active_booking("cust-A") is None
    assert reservations.get_table(tables["T1"].id).status == TableStatus.AVAILABLE


def test_full_lifecycle_moves_table_state(reservations, tables):
    t1 = tables["T1"]
    booking = _book(reservations, "cust-A", t1)

    confirmed = reservations.confirm_booking(booking.id, actor_id="host-1")
    assert confirmed.status == BookingStatus.CONFIRMED
    assert reservations.get_table(t1.id).status == TableStatus.RESERVED

    seated = reservations.check_in(booking.id, actor_id="host-1")
    assert seated.status == BookingStatus.IN_PROGRESS
    assert reservations.get_table(t1.id).status == TableStatus.OCCUPIED

    done = reservations.check_out(booking.id, actor_id="host-1")
    assert done.status == BookingStatus.COMPLETED
    assert reservations.get_table(t1.id).status == TableStatus.AVAILABLE
    assert reservations.active_booking("cust-A") is None


def test_cancel_completed_booking_leaves_table_unchanged(reservations, tables):
    t1 = tables["T1"]
    booking = _book(reservations, "cust-A", t1)
    reservations.check_in(booking.id, actor_id="host-1")
    reservations.check_out(booking.id, actor_id="host-1")

    with pytest.raises(InvalidStateError):
        reservations.cancel_booking(booking.id, actor_id="host-1")

    assert reservations.get_booking(booking.id).status == BookingStatus.COMPLETED
    assert reservations.get_table(t1.id).status == TableStatus.AVAILABLE


def test_cancel_releases_table(reservations, tables):
    t1 = tables["T1"]
    booking = _book(reservations, "cust-A", t1)

    cancelled = reservations.cancel_booking(booking.id, actor_id="cust-A")

    assert cancelled.status == BookingStatus.CANCELLED
    assert reservations.get_table(t1.id).status == TableStatus.AVAILABLE


def test_unknown_booking(reservations):
    with pytest.raises(NotFoundError):
        reservations.cancel_booking("missing", actor_id="host-1")


def test_no_show_sweep_releases_overdue_tables(reservations, tables, clock):
    overdue = _book(reservations, "cust-A", tables["T1"], booking_date=date(2024, 5, 2))
    upcoming = _book(reservations, "cust-B", tables["T2"], booking_date=date(2024, 5, 10))

    clock.advance_to(datetime(2024, 5, 3, 9, 0, tzinfo=timezone.utc))
    swept = reservations.mark_no_shows(actor_id="host-1")

    assert [booking.id for booking in swept] == [overdue.id]
    assert reservations.get_booking(overdue.id).status == BookingStatus.NO_SHOW
    assert reservations.get_table(tables["T1"].id).status == TableStatus.AVAILABLE
    assert reservations.get_booking(upcoming.id).status == BookingStatus.PENDING


def test_availability_for_slot(reservations, tables):
    _book(reservations, "cust-A", tables["T1"])

    free_now = reservations.find_available(min_capacity=2)
    assert [table.number for table in free_now] == ["T2"]

    free_for_slot = reservations.available_tables(2, BOOKING_DATE, "18:00")
    assert [table.number for table in free_for_slot] == ["T2"]

    large = reservations.available_tables(3, BOOKING_DATE, "20:00")
    assert large == []


def test_duplicate_table_number(reservations, tables):
    with pytest.raises(ConflictError) as exc_info:
        reservations.add_table("T1", capacity=6)

    assert exc_info.value.code == DUPLICATE_TABLE_NUMBER


def test_booking_events_are_recorded_in_outbox(reservations, tables, container, notifier):
    booking = _book(reservations, "cust-A", tables["T1"])
    reservations.confirm_booking(booking.id, actor_id="host-1")
    container.dispatcher.shutdown(wait=True)

    delivered = [event for event, payload in notifier.events if payload["booking_id"] == booking.id]
    assert sorted(delivered) == ["BOOKING_CONFIRMED", "BOOKING_CREATED"]
    assert container.dispatcher.list_events(status="PENDING") == []
    published = container.dispatcher.list_events(status="PUBLISHED")
    assert {event.event_type for event in published} == {"BOOKING_CREATED", "BOOKING_CONFIRMED"}
