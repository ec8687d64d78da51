from datetime import date
from decimal import Decimal

import pytest

from tableside.application.order_engine import OrderLine
from tableside.domain.exceptions import (
    ALREADY_PAID,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from tableside.domain.state_machine import OrderStatus, PaymentMethod, PaymentStatus


def _place(orders, menu_items, customer_id="cust-A", booking_id=None):
    return orders.create_order(
        customer_id=customer_id,
        items=[
            OrderLine(menu_items["M1"].id, 2),
            OrderLine(menu_items["M2"].id, 1, special_instructions="no onions"),
        ],
        booking_id=booking_id,
    )


def test_order_total_and_cancel_twice(orders, menu_items):
    order = _place(orders, menu_items)

    assert order.total_amount == Decimal("220.00")
    assert order.status == OrderStatus.PENDING
    assert [item.menu_item_name for item in order.items] == ["Cappuccino", "Club Sandwich"]

    cancelled = orders.cancel_order(order.id, actor_id="cust-A")
    assert cancelled.status == OrderStatus.CANCELLED

    with pytest.raises(InvalidStateError):
        orders.cancel_order(order.id, actor_id="cust-A")


def test_price_change_does_not_touch_existing_orders(orders, menu, menu_items):
    order = _place(orders, menu_items)

    menu.update_item(menu_items["M1"].id, price=Decimal("65.00"))

    stored = orders.get_order(order.id)
    assert stored.total_amount == Decimal("220.00")
    assert stored.items[0].unit_price == Decimal("50.00")

    newer = _place(orders, menu_items, customer_id="cust-B")
    assert newer.total_amount == Decimal("250.00")


def test_order_validation(orders, menu, menu_items):
    with pytest.raises(ValidationError):
        orders.create_order("cust-A", items=[])

    with pytest.raises(ValidationError):
        orders.create_order("cust-A", items=[OrderLine(menu_items["M1"].id, 0)])

    with pytest.raises(NotFoundError):
        orders.create_order("cust-A", items=[OrderLine("missing", 1)])

    menu.update_item(menu_items["M2"].id, available=False)
    with pytest.raises(ValidationError):
        orders.create_order("cust-A", items=[OrderLine(menu_items["M2"].id, 1)])

    assert orders.customer_orders("cust-A") == []


def test_order_for_booking_must_belong_to_customer(orders, reservations, tables, menu_items):
    booking = reservations.create_booking("cust-A", tables["T1"].id, date(2024, 6, 1), "18:00", 2)

    with pytest.raises(ValidationError):
        _place(orders, menu_items, customer_id="cust-B", booking_id=booking.id)

    with pytest.raises(NotFoundError):
        _place(orders, menu_items, booking_id="missing")

    order = _place(orders, menu_items, booking_id=booking.id)
    assert order.booking_id == booking.id


def test_kitchen_flow_and_queues(orders, menu_items):
    order = _place(orders, menu_items)
    orders.update_status(order.id, "confirmed", actor_id="waiter-1")

    assert [queued.id for queued in orders.kitchen_queue()] == [order.id]

    orders.update_status(order.id, OrderStatus.PREPARING, actor_id="chef-1")
    orders.update_status(order.id, OrderStatus.READY, actor_id="chef-1")

    assert orders.kitchen_queue() == []
    assert [ready.id for ready in orders.ready_orders()] == [order.id]

    orders.update_status(order.id, OrderStatus.SERVED, actor_id="waiter-1")
    done = orders.update_status(order.id, OrderStatus.COMPLETED, actor_id="waiter-1")

    assert done.status == OrderStatus.COMPLETED
    assert orders.ready_orders() == []


def test_illegal_status_change_leaves_order_unchanged(orders, menu_items):
    order = _place(orders, menu_items)

    with pytest.raises(InvalidStateError):
        orders.update_status(order.id, OrderStatus.SERVED, actor_id="waiter-1")

    with pytest.raises(InvalidStateError):
        orders.update_status(order.id, "TELEPORTED", actor_id="waiter-1")

    assert orders.get_order(order.id).status == OrderStatus.PENDING


def test_cancel_order_cancels_pending_payment(orders, payments, menu_items):
    order = _place(orders, menu_items)
    payments.create_intent("cust-A", order.id, Decimal("220.00"))

    orders.cancel_order(order.id, actor_id="cust-A")

    assert payments.payment_for_order(order.id).status == PaymentStatus.CANCELLED


def test_status_change_to_cancelled_cancels_pending_payment(orders, payments, menu_items, signer):
    order = _place(orders, menu_items)
    intent = payments.create_intent("cust-A", order.id, Decimal("220.00"))

    cancelled = orders.update_status(order.id, "cancelled", actor_id="waiter-1")

    assert cancelled.status == OrderStatus.CANCELLED
    assert payments.payment_for_order(order.id).status == PaymentStatus.CANCELLED

    with pytest.raises(InvalidStateError):
        payments.verify(
            intent.gateway_order_ref,
            "pay_001",
            signer.sign(intent.gateway_order_ref, "pay_001"),
        )
    assert payments.payment_for_order(order.id).status == PaymentStatus.CANCELLED
    assert orders.get_order(order.id).status == OrderStatus.CANCELLED


def test_confirmed_order_cancelled_by_staff_keeps_settled_payment(orders, payments, menu_items):
    order = _place(orders, menu_items)
    payments.process(order.id, Decimal("220.00"), PaymentMethod.CARD, actor_id="waiter-1")

    orders.update_status(order.id, OrderStatus.CANCELLED, actor_id="manager-1")

    payment = payments.payment_for_order(order.id)
    assert payment.status == PaymentStatus.SUCCESS
    assert payment.success


def test_delete_unpaid_order_removes_payment(orders, payments, menu_items):
    order = _place(orders, menu_items)
    payments.create_intent("cust-A", order.id, Decimal("220.00"))

    orders.delete_order(order.id, actor_id="manager-1")

    with pytest.raises(NotFoundError):
        orders.get_order(order.id)
    with pytest.raises(NotFoundError):
        payments.payment_for_order(order.id)


def test_paid_order_cannot_be_deleted(orders, payments, menu_items):
    order = _place(orders, menu_items)
    payments.process(order.id, Decimal("220.00"), PaymentMethod.CASH, actor_id="waiter-1")

    with pytest.raises(ConflictError) as exc_info:
        orders.delete_order(order.id, actor_id="manager-1")

    assert exc_info.value.code == ALREADY_PAID
    assert orders.get_order(order.id).status == OrderStatus.CONFIRMED
