import threading
from datetime import date
from decimal import Decimal

from sqlalchemy import func, select

from tableside.application.order_engine import OrderLine
from tableside.domain.exceptions import ConflictError
from tableside.domain.state_machine import BookingStatus, PaymentStatus, TableStatus
from tableside.infrastructure.db.models import Booking, Payment

BOOKING_DATE = date(2024, 6, 1)
WORKERS = 8


def _run_together(target, args_list):
    start = threading.Barrier(len(args_list))
    results = [None] * len(args_list)

    def runner(index, args):
        start.wait()
        try:
            results[index] = target(*args)
        except ConflictError as exc:
            results[index] = exc

    threads = [
        threading.Thread(target=runner, args=(index, args))
        for index, args in enumerate(args_list)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    return results


def _active_bookings(session_factory, **filters):
    stmt = select(func.count()).select_from(Booking).where(
        Booking.status.in_([BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS])
    )
    for column, value in filters.items():
        stmt = stmt.where(getattr(Booking, column) == value)
    with session_factory() as db:
        return db.execute(stmt).scalar_one()


def test_only_one_of_many_customers_gets_the_table(reservations, tables, session_factory):
    t1 = tables["T1"]

    results = _run_together(
        lambda customer_id: reservations.create_booking(
            customer_id, t1.id, BOOKING_DATE, "18:00", 2
        ),
        [(f"cust-{index}",) for index in range(WORKERS)],
    )

    winners = [result for result in results if not isinstance(result, ConflictError)]
    assert len(winners) == 1
    assert all(isinstance(result, ConflictError) for result in results if result not in winners)
    assert _active_bookings(session_factory, table_id=t1.id) == 1
    assert reservations.get_table(t1.id).status == TableStatus.RESERVED


def test_one_customer_racing_for_many_tables_gets_one(reservations, session_factory):
    for index in range(WORKERS):
        reservations.add_table(f"R{index}", capacity=4)
    table_ids = [table.id for table in reservations.list_tables()]

    results = _run_together(
        lambda table_id: reservations.create_booking(
            "cust-A", table_id, BOOKING_DATE, "19:00", 2
        ),
        [(table_id,) for table_id in table_ids],
    )

    winners = [result for result in results if not isinstance(result, ConflictError)]
    assert len(winners) == 1
    assert _active_bookings(session_factory, customer_id="cust-A") == 1
    reserved = [
        table for table in reservations.list_tables() if table.status == TableStatus.RESERVED
    ]
    assert [table.id for table in reserved] == [winners[0].table_id]


def test_concurrent_confirmations_settle_once(payments, orders, menu_items, signer, session_factory):
    order = orders.create_order(
        customer_id="cust-A",
        items=[OrderLine(menu_items["M1"].id, 2), OrderLine(menu_items["M2"].id, 1)],
    )
    intent = payments.create_intent("cust-A", order.id, Decimal("220.00"))
    signature = signer.sign(intent.gateway_order_ref, "pay_001")

    results = _run_together(
        lambda: payments.verify(intent.gateway_order_ref, "pay_001", signature),
        [() for _ in range(WORKERS)],
    )

    assert all(result.success for result in results)
    assert sum(1 for result in results if not result.replayed) == 1
    with session_factory() as db:
        settled = db.execute(
            select(func.count()).select_from(Payment).where(Payment.status == PaymentStatus.SUCCESS)
        ).scalar_one()
    assert settled == 1
