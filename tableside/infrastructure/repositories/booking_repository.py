# tableside/infrastructure/repositories/booking_repository.py

from datetime import date

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from tableside.domain.state_machine import ACTIVE_BOOKING_STATUSES, BookingStatus
from tableside.infrastructure.db.models import Booking

_ACTIVE = sorted(ACTIVE_BOOKING_STATUSES)


def active_on_slot(booking_date: date, slot: str) -> tuple:
    """
    The conflict predicate. Shared by the booking-time check and the
    availability query so both answer the same question.
    """
    return (
        Booking.booking_date == booking_date,
        Booking.slot == slot,
        Booking.status.in_(_ACTIVE),
    )


class BookingRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, booking_id: str) -> Booking | None:
        stmt = select(Booking).where(Booking.id == booking_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def lock_booking(self, booking_id: str) -> Booking | None:
        stmt = select(Booking).where(Booking.id == booking_id).with_for_update()
        return self.db.execute(stmt).scalar_one_or_none()

    def count_active_for_customer(self, customer_id: str) -> int:
        stmt = (
            select(func.count())
            .select_from(Booking)
            .where(Booking.customer_id == customer_id)
            .where(Booking.status.in_(_ACTIVE))
        )
        return self.db.execute(stmt).scalar_one()

    def find_active_for_customer(self, customer_id: str) -> Booking | None:
        stmt = (
            select(Booking)
            .where(Booking.customer_id == customer_id)
            .where(Booking.status.in_(_ACTIVE))
            .order_by(Booking.created_at.desc())
        )
        return self.db.execute(stmt).scalars().first()

    def find_conflicts(
        self,
        table_id: str,
        booking_date: date,
        slot: str,
    ) -> list[Booking]:
        stmt = (
            select(Booking)
            .where(Booking.table_id == table_id)
            .where(*active_on_slot(booking_date, slot))
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_for_customer(self, customer_id: str) -> list[Booking]:
        stmt = (
            select(Booking)
            .where(Booking.customer_id == customer_id)
            .order_by(Booking.created_at.desc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def find_overdue(self, before: date) -> list[Booking]:
        stmt = (
            select(Booking)
            .where(Booking.booking_date < before)
            .where(
                Booking.status.in_(
                    [BookingStatus.PENDING, BookingStatus.CONFIRMED]
                )
            )
            .order_by(Booking.booking_date, Booking.slot)
        )
        return list(self.db.execute(stmt).scalars().all())

    def add(self, booking: Booking) -> Booking:
        self.db.add(booking)
        return booking

    def update_status(
        self,
        booking: Booking,
        new_status: BookingStatus,
    ) -> None:

        booking.status = new_status
