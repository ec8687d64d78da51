# tableside/infrastructure/repositories/order_repository.py

from sqlalchemy import select
from sqlalchemy.orm import Session

from tableside.domain.state_machine import OrderStatus
from tableside.infrastructure.db.models import Order


class OrderRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, order_id: str) -> Order | None:
        stmt = select(Order).where(Order.id == order_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def lock_order(self, order_id: str) -> Order | None:
        stmt = select(Order).where(Order.id == order_id).with_for_update()
        return self.db.execute(stmt).scalar_one_or_none()

    def list_for_customer(self, customer_id: str) -> list[Order]:
        stmt = (
            select(Order)
            .where(Order.customer_id == customer_id)
            .order_by(Order.created_at.desc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_by_status(self, statuses: list[OrderStatus]) -> list[Order]:
        stmt = (
            select(Order)
            .where(Order.status.in_(statuses))
            .order_by(Order.created_at)
        )
        return list(self.db.execute(stmt).scalars().all())

    def add(self, order: Order) -> Order:
        self.db.add(order)
        return order

    def delete(self, order: Order) -> None:
        # items go with the order through the delete-orphan cascade
        self.db.delete(order)
