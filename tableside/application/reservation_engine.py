import logging
from datetime import date, datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from tableside.application.notifications import (
    BOOKING_CANCELLED,
    BOOKING_CHECKED_IN,
    BOOKING_COMPLETED,
    BOOKING_CONFIRMED,
    BOOKING_CREATED,
    BOOKING_NO_SHOW,
    NotificationDispatcher,
    PendingNotification,
)
from tableside.application.table_registry import TableRegistry
from tableside.domain.clock import Clock
from tableside.domain.exceptions import (
    ACTIVE_BOOKING_EXISTS,
    SLOT_TAKEN,
    TABLE_UNAVAILABLE,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from tableside.domain.state_machine import BookingStateMachine, BookingStatus, TableStatus
from tableside.infrastructure.db.models import Booking, DiningTable
from tableside.infrastructure.db.session import session_scope
from tableside.infrastructure.locks import KeyedLocks
from tableside.infrastructure.repositories.booking_repository import BookingRepository
from tableside.infrastructure.repositories.table_repository import TableRepository

logger = logging.getLogger(__name__)


def _table_key(table_id: str) -> str:
    return f"table:{table_id}"


def _customer_key(customer_id: str) -> str:
    return f"customer:{customer_id}"


class ReservationEngine:
    """
    Creates and moves bookings through their lifecycle while keeping the
    table state in step.

    Every accept/reject decision is made under the table lock (and, for
    creation, the customer lock) inside the same transaction that writes
    the result, so a check can never be acted on after it went stale.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        locks: KeyedLocks,
        dispatcher: NotificationDispatcher,
        clock: Clock,
    ):
        self.session_factory = session_factory
        self.locks = locks
        self.dispatcher = dispatcher
        self.clock = clock

    # -------------------------------------------
    # Tables
    # -------------------------------------------
    def add_table(
        self,
        number: str,
        capacity: int,
        location: str | None = None,
        description: str | None = None,
    ) -> DiningTable:
        with session_scope(self.session_factory, "add_table", number=number) as db:
            return TableRegistry(db, self.clock).create(
                number=number,
                capacity=capacity,
                location=location,
                description=description,
            )

    def get_table(self, table_id: str) -> DiningTable:
        with session_scope(self.session_factory, "get_table", table_id=table_id) as db:
            return TableRegistry(db, self.clock).get(table_id)

    def list_tables(self) -> list[DiningTable]:
        with session_scope(self.session_factory, "list_tables") as db:
            return TableRegistry(db, self.clock).list_tables()

    def find_available(self, min_capacity: int) -> list[DiningTable]:
        self._validate_capacity(min_capacity)
        with session_scope(self.session_factory, "find_available") as db:
            return TableRegistry(db, self.clock).find_available(min_capacity)

    def available_tables(
        self,
        min_capacity: int,
        booking_date: date,
        slot: str,
    ) -> list[DiningTable]:
        """
        Tables that are AVAILABLE, seat at least min_capacity and have no
        active booking on (booking_date, slot). May trail in-flight writes;
        create_booking re-checks under its lock.
        """
        self._validate_capacity(min_capacity)
        slot = self._validate_slot(slot)
        with session_scope(
            self.session_factory,
            "available_tables",
            booking_date=booking_date,
            slot=slot,
        ) as db:
            return TableRepository(db).find_available_for_slot(
                min_capacity,
                booking_date,
                slot,
            )

    # -------------------------------------------
    # Create booking (date + slot system)
    # -------------------------------------------
    def create_booking(
        self,
        customer_id: str,
        table_id: str,
        booking_date: date,
        slot: str,
        number_of_guests: int,
        duration: int = 2,
        special_requests: str | None = None,
    ) -> Booking:
        slot = self._validate_request(customer_id, booking_date, slot, number_of_guests, duration)

        with self.locks.hold(_customer_key(customer_id), _table_key(table_id)):
            with session_scope(
                self.session_factory,
                "create_booking",
                customer_id=customer_id,
                table_id=table_id,
                booking_date=booking_date,
                slot=slot,
            ) as db:
                booking_repository = BookingRepository(db)
                registry = TableRegistry(db, self.clock)

                if booking_repository.count_active_for_customer(customer_id) > 0:
                    logger.info(
                        "Booking rejected, customer has an active booking. customer_id=%s",
                        customer_id,
                    )
                    raise ConflictError(
                        "active booking exists",
                        code=ACTIVE_BOOKING_EXISTS,
                    )

                table = registry.lock(table_id)
                if table.status != TableStatus.AVAILABLE:
                    logger.info(
                        "Booking rejected, table %s is %s.",
                        table.number,
                        table.status.value,
                    )
                    raise ConflictError("table unavailable", code=TABLE_UNAVAILABLE)

                if number_of_guests > table.capacity:
                    raise ValidationError(
                        f"Table {table.number} seats {table.capacity}, "
                        f"requested {number_of_guests} guests."
                    )

                if booking_repository.find_conflicts(table_id, booking_date, slot):
                    logger.info(
                        "Booking rejected, slot taken. table_id=%s date=%s slot=%s",
                        table_id,
                        booking_date,
                        slot,
                    )
                    raise ConflictError("slot taken", code=SLOT_TAKEN)

                now = self.clock.now()
                booking = booking_repository.add(
                    Booking(
                        id=self.clock.new_id(),
                        customer_id=customer_id,
                        table_id=table_id,
                        booking_date=booking_date,
                        slot=slot,
                        duration=duration,
                        number_of_guests=number_of_guests,
                        status=BookingStatus.PENDING,
                        special_requests=special_requests,
                        created_at=now,
                        updated_at=now,
                    )
                )
                registry.transition(table_id, TableStatus.RESERVED)
                self._flush_new_booking(db)

                notification = self._record(db, booking, BOOKING_CREATED, customer_id)

        self.dispatcher.publish(notification)
        logger.info(
            "Booking %s accepted. customer_id=%s table=%s date=%s slot=%s",
            booking.id,
            customer_id,
            table.number,
            booking_date,
            slot,
        )
        return booking

    # -------------------------------------------
    # Lifecycle transitions
    # -------------------------------------------
    def confirm_booking(self, booking_id: str, actor_id: str) -> Booking:
        return self._transition(
            "confirm_booking",
            booking_id,
            actor_id,
            to_status=BookingStatus.CONFIRMED,
            table_status=None,
            event_type=BOOKING_CONFIRMED,
        )

    def cancel_booking(self, booking_id: str, actor_id: str) -> Booking:
        return self._transition(
            "cancel_booking",
            booking_id,
            actor_id,
            to_status=BookingStatus.CANCELLED,
            table_status=TableStatus.AVAILABLE,
            event_type=BOOKING_CANCELLED,
        )

    def check_in(self, booking_id: str, actor_id: str) -> Booking:
        return self._transition(
            "check_in",
            booking_id,
            actor_id,
            to_status=BookingStatus.IN_PROGRESS,
            table_status=TableStatus.OCCUPIED,
            event_type=BOOKING_CHECKED_IN,
        )

    def check_out(self, booking_id: str, actor_id: str) -> Booking:
        return self._transition(
            "check_out",
            booking_id,
            actor_id,
            to_status=BookingStatus.COMPLETED,
            table_status=TableStatus.AVAILABLE,
            event_type=BOOKING_COMPLETED,
        )

    def mark_no_shows(self, actor_id: str, before: date | None = None) -> list[Booking]:
        """
        Sweep PENDING/CONFIRMED bookings dated before `before` (default:
        today) into NO_SHOW and release their tables. Each booking is moved
        in its own transaction; one that changed state meanwhile is skipped.
        """
        cutoff = before or self.clock.today()
        with session_scope(self.session_factory, "find_overdue", before=cutoff) as db:
            overdue = [b.id for b in BookingRepository(db).find_overdue(cutoff)]

        swept = []
        for booking_id in overdue:
            try:
                swept.append(
                    self._transition(
                        "mark_no_show",
                        booking_id,
                        actor_id,
                        to_status=BookingStatus.NO_SHOW,
                        table_status=TableStatus.AVAILABLE,
                        event_type=BOOKING_NO_SHOW,
                    )
                )
            except (ConflictError, InvalidStateError, NotFoundError) as exc:
                logger.info("No-show sweep skipped booking %s: %s", booking_id, exc)

        if swept:
            logger.info("No-show sweep moved %s booking(s) before %s.", len(swept), cutoff)
        return swept

    # -------------------------------------------
    # Queries
    # -------------------------------------------
    def get_booking(self, booking_id: str) -> Booking:
        with session_scope(self.session_factory, "get_booking", booking_id=booking_id) as db:
            booking = BookingRepository(db).get_by_id(booking_id)
            if not booking:
                raise NotFoundError("booking", booking_id)
            return booking

    def customer_bookings(self, customer_id: str) -> list[Booking]:
        with session_scope(
            self.session_factory,
            "customer_bookings",
            customer_id=customer_id,
        ) as db:
            return BookingRepository(db).list_for_customer(customer_id)

    def active_booking(self, customer_id: str) -> Booking | None:
        with session_scope(
            self.session_factory,
            "active_booking",
            customer_id=customer_id,
        ) as db:
            return BookingRepository(db).find_active_for_customer(customer_id)

    # -------------------------------------------
    # Helpers
    # -------------------------------------------
    def _transition(
        self,
        operation: str,
        booking_id: str,
        actor_id: str,
        to_status: BookingStatus,
        table_status: TableStatus | None,
        event_type: str,
    ) -> Booking:
        table_id = self.get_booking(booking_id).table_id

        with self.locks.hold(_table_key(table_id)):
            with session_scope(
                self.session_factory,
                operation,
                booking_id=booking_id,
                table_id=table_id,
                actor_id=actor_id,
            ) as db:
                booking = BookingRepository(db).lock_booking(booking_id)
                if not booking:
                    raise NotFoundError("booking", booking_id)

                from_status = booking.status
                BookingStateMachine.validate_transition(from_status, to_status)
                BookingRepository(db).update_status(booking, to_status)
                booking.updated_at = self.clock.now()

                if table_status is not None:
                    TableRegistry(db, self.clock).transition(booking.table_id, table_status)

                db.flush()
                notification = self._record(db, booking, event_type, actor_id)

        self.dispatcher.publish(notification)
        logger.info(
            "Booking %s: %s -> %s by %s",
            booking_id,
            from_status.value,
            to_status.value,
            actor_id,
        )
        return booking

    def _record(
        self,
        db: Session,
        booking: Booking,
        event_type: str,
        actor_id: str,
    ) -> PendingNotification | None:
        return self.dispatcher.record(
            db,
            aggregate_type="booking",
            aggregate_id=booking.id,
            event_type=event_type,
            payload={
                "booking_id": booking.id,
                "customer_id": booking.customer_id,
                "table_id": booking.table_id,
                "booking_date": booking.booking_date.isoformat(),
                "slot": booking.slot,
                "number_of_guests": booking.number_of_guests,
                "status": booking.status.value,
                "actor_id": actor_id,
            },
            dedupe_key=f"booking:{booking.id}:{event_type}",
        )

    @staticmethod
    def _flush_new_booking(db: Session) -> None:
        # The partial unique indexes catch writers in other processes that
        # raced past the in-process locks.
        try:
            db.flush()
        except IntegrityError as exc:
            reason = str(exc.orig).lower()
            if "customer" in reason:
                raise ConflictError(
                    "active booking exists",
                    code=ACTIVE_BOOKING_EXISTS,
                ) from exc
            raise ConflictError("slot taken", code=SLOT_TAKEN) from exc

    def _validate_request(
        self,
        customer_id: str,
        booking_date: date,
        slot: str,
        number_of_guests: int,
        duration: int,
    ) -> str:
        if not customer_id:
            raise ValidationError("customer_id is required.")
        if not isinstance(booking_date, date) or isinstance(booking_date, datetime):
            raise ValidationError("booking_date must be a calendar date.")
        if booking_date < self.clock.today():
            raise ValidationError(f"booking_date {booking_date} is in the past.")
        if number_of_guests is None or number_of_guests < 1:
            raise ValidationError("number_of_guests must be at least 1.")
        if duration is None or duration < 1:
            raise ValidationError("duration must be at least 1 hour.")
        return self._validate_slot(slot)

    @staticmethod
    def _validate_slot(slot: str) -> str:
        slot = (slot or "").strip()
        if not slot:
            raise ValidationError("slot is required.")
        return slot

    @staticmethod
    def _validate_capacity(min_capacity: int) -> None:
        if min_capacity is None or min_capacity < 1:
            raise ValidationError("min_capacity must be at least 1.")
