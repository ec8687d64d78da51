import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session, sessionmaker

from tableside.application.notifications import (
    ORDER_PLACED,
    ORDER_STATUS_CHANGED,
    NotificationDispatcher,
    PendingNotification,
)
from tableside.domain.clock import Clock
from tableside.domain.exceptions import (
    ALREADY_PAID,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from tableside.domain.money import order_total, to_amount
from tableside.domain.state_machine import OrderStateMachine, OrderStatus, PaymentStatus
from tableside.infrastructure.db.models import Order, OrderItem
from tableside.infrastructure.db.session import session_scope
from tableside.infrastructure.locks import KeyedLocks
from tableside.infrastructure.repositories.booking_repository import BookingRepository
from tableside.infrastructure.repositories.menu_repository import MenuRepository
from tableside.infrastructure.repositories.order_repository import OrderRepository
from tableside.infrastructure.repositories.payment_repository import PaymentRepository

logger = logging.getLogger(__name__)

KITCHEN_STATUSES = [OrderStatus.CONFIRMED, OrderStatus.PREPARING]


def order_key(order_id: str) -> str:
    return f"order:{order_id}"


def payment_key(order_id: str) -> str:
    return f"payment:{order_id}"


def _names_cancel(status: OrderStatus | str) -> bool:
    if isinstance(status, OrderStatus):
        return status == OrderStatus.CANCELLED
    return isinstance(status, str) and status.strip().upper() == OrderStatus.CANCELLED.value


@dataclass(frozen=True)
class OrderLine:
    menu_item_id: str
    quantity: int
    special_instructions: str | None = None


class OrderEngine:
    """Places orders against a menu price snapshot and drives their status."""

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

    def create_order(
        self,
        customer_id: str,
        items: list[OrderLine],
        booking_id: str | None = None,
        special_instructions: str | None = None,
    ) -> Order:
        if not customer_id:
            raise ValidationError("customer_id is required.")
        if not items:
            raise ValidationError("An order needs at least one item.")
        for line in items:
            if line.quantity is None or line.quantity < 1:
                raise ValidationError(
                    f"Quantity for menu item {line.menu_item_id} must be at least 1."
                )

        with session_scope(
            self.session_factory,
            "create_order",
            customer_id=customer_id,
            booking_id=booking_id,
        ) as db:
            if booking_id:
                booking = BookingRepository(db).get_by_id(booking_id)
                if not booking:
                    raise NotFoundError("booking", booking_id)
                if booking.customer_id != customer_id:
                    raise ValidationError("Booking belongs to another customer.")

            menu = MenuRepository(db)
            order_items = []
            for position, line in enumerate(items):
                menu_item = menu.get_menu_item(line.menu_item_id)
                if not menu_item:
                    raise NotFoundError("menu item", line.menu_item_id)
                if not menu_item.available:
                    raise ValidationError(f"{menu_item.name} is currently unavailable.")

                order_items.append(
                    OrderItem(
                        id=self.clock.new_id(),
                        position=position,
                        menu_item_id=menu_item.id,
                        menu_item_name=menu_item.name,
                        unit_price=to_amount(menu_item.price),
                        quantity=line.quantity,
                        special_instructions=line.special_instructions,
                    )
                )

            now = self.clock.now()
            order = OrderRepository(db).add(
                Order(
                    id=self.clock.new_id(),
                    customer_id=customer_id,
                    booking_id=booking_id,
                    status=OrderStatus.PENDING,
                    total_amount=order_total(
                        (item.unit_price, item.quantity) for item in order_items
                    ),
                    special_instructions=special_instructions,
                    created_at=now,
                    updated_at=now,
                    items=order_items,
                )
            )
            db.flush()
            notification = self._record(db, order, ORDER_PLACED, customer_id)

        self.dispatcher.publish(notification)
        logger.info(
            "Order %s placed. customer_id=%s items=%s total=%s",
            order.id,
            customer_id,
            len(order_items),
            order.total_amount,
        )
        return order

    def update_status(
        self,
        order_id: str,
        new_status: OrderStatus | str,
        actor_id: str,
    ) -> Order:
        keys = [order_key(order_id)]
        if _names_cancel(new_status):
            keys.append(payment_key(order_id))

        with self.locks.hold(*keys):
            with session_scope(
                self.session_factory,
                "update_order_status",
                order_id=order_id,
                actor_id=actor_id,
            ) as db:
                order = self._lock(db, order_id)
                from_status = order.status
                target = (
                    new_status
                    if isinstance(new_status, OrderStatus)
                    else OrderStateMachine.parse(from_status, new_status)
                )
                OrderStateMachine.validate_transition(from_status, target)
                if target == OrderStatus.CANCELLED:
                    self._cancel(db, order)
                else:
                    order.status = target
                    order.updated_at = self.clock.now()
                db.flush()
                notification = self._record(db, order, ORDER_STATUS_CHANGED, actor_id)

        self.dispatcher.publish(notification)
        logger.info(
            "Order %s: %s -> %s by %s",
            order_id,
            from_status.value,
            target.value,
            actor_id,
        )
        return order

    def cancel_order(self, order_id: str, actor_id: str) -> Order:
        with self.locks.hold(order_key(order_id), payment_key(order_id)):
            with session_scope(
                self.session_factory,
                "cancel_order",
                order_id=order_id,
                actor_id=actor_id,
            ) as db:
                order = self._lock(db, order_id)
                # Only allow cancelling pending orders
                if order.status != OrderStatus.PENDING:
                    raise InvalidStateError(
                        entity="order",
                        from_state=order.status.value,
                        to_state=OrderStatus.CANCELLED.value,
                    )

                self._cancel(db, order)
                db.flush()
                notification = self._record(db, order, ORDER_STATUS_CHANGED, actor_id)

        self.dispatcher.publish(notification)
        logger.info("Order %s cancelled by %s", order_id, actor_id)
        return order

    def delete_order(self, order_id: str, actor_id: str) -> None:
        with self.locks.hold(order_key(order_id), payment_key(order_id)):
            with session_scope(
                self.session_factory,
                "delete_order",
                order_id=order_id,
                actor_id=actor_id,
            ) as db:
                order = self._lock(db, order_id)
                payment_repository = PaymentRepository(db)
                payment = payment_repository.lock_by_order_id(order_id)
                if payment and payment.success:
                    raise ConflictError("already paid", code=ALREADY_PAID)
                if payment:
                    payment_repository.delete(payment)
                    db.flush()

                OrderRepository(db).delete(order)
                db.flush()

        logger.info("Order %s deleted by %s", order_id, actor_id)

    # -------------------------------------------
    # Queries
    # -------------------------------------------
    def get_order(self, order_id: str) -> Order:
        with session_scope(self.session_factory, "get_order", order_id=order_id) as db:
            order = OrderRepository(db).get_by_id(order_id)
            if not order:
                raise NotFoundError("order", order_id)
            return order

    def customer_orders(self, customer_id: str) -> list[Order]:
        with session_scope(
            self.session_factory,
            "customer_orders",
            customer_id=customer_id,
        ) as db:
            return OrderRepository(db).list_for_customer(customer_id)

    def kitchen_queue(self) -> list[Order]:
        with session_scope(self.session_factory, "kitchen_queue") as db:
            return OrderRepository(db).list_by_status(KITCHEN_STATUSES)

    def ready_orders(self) -> list[Order]:
        with session_scope(self.session_factory, "ready_orders") as db:
            return OrderRepository(db).list_by_status([OrderStatus.READY])

    # -------------------------------------------
    # Helpers
    # -------------------------------------------
    @staticmethod
    def _lock(db: Session, order_id: str) -> Order:
        order = OrderRepository(db).lock_order(order_id)
        if not order:
            raise NotFoundError("order", order_id)
        return order

    def _cancel(self, db: Session, order: Order) -> None:
        """Cancel the order and any payment that can no longer settle it."""
        now = self.clock.now()
        order.status = OrderStatus.CANCELLED
        order.updated_at = now

        payment = PaymentRepository(db).lock_by_order_id(order.id)
        if payment and payment.status in (PaymentStatus.PENDING, PaymentStatus.FAILED):
            payment.status = PaymentStatus.CANCELLED
            payment.updated_at = now

    def _record(
        self,
        db: Session,
        order: Order,
        event_type: str,
        actor_id: str,
    ) -> PendingNotification | None:
        return record_order_event(self.dispatcher, db, order, event_type, actor_id)


def record_order_event(
    dispatcher: NotificationDispatcher,
    db: Session,
    order: Order,
    event_type: str,
    actor_id: str,
) -> PendingNotification | None:
    return dispatcher.record(
        db,
        aggregate_type="order",
        aggregate_id=order.id,
        event_type=event_type,
        payload={
            "order_id": order.id,
            "customer_id": order.customer_id,
            "booking_id": order.booking_id,
            "status": order.status.value,
            "total_amount": str(order.total_amount),
            "actor_id": actor_id,
        },
        dedupe_key=f"order:{order.id}:{event_type}:{order.status.value}",
    )
