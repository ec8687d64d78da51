# tableside/infrastructure/repositories/table_repository.py

from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from tableside.domain.state_machine import TableStatus
from tableside.infrastructure.db.models import Booking, DiningTable
from tableside.infrastructure.repositories.booking_repository import active_on_slot


class TableRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, table_id: str) -> DiningTable | None:
        stmt = select(DiningTable).where(DiningTable.id == table_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_by_number(self, number: str) -> DiningTable | None:
        stmt = select(DiningTable).where(DiningTable.number == number)
        return self.db.execute(stmt).scalar_one_or_none()

    def lock_table(self, table_id: str) -> DiningTable | None:
        """
        SELECT ... FOR UPDATE
        Serializes booking transitions on one table across processes.
        """
        stmt = (
            select(DiningTable)
            .where(DiningTable.id == table_id)
            .with_for_update()
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def list_all(self) -> list[DiningTable]:
        stmt = select(DiningTable).order_by(DiningTable.number)
        return list(self.db.execute(stmt).scalars().all())

    def find_available(self, min_capacity: int) -> list[DiningTable]:
        stmt = (
            select(DiningTable)
            .where(DiningTable.status == TableStatus.AVAILABLE)
            .where(DiningTable.capacity >= min_capacity)
            .order_by(DiningTable.capacity, DiningTable.number)
        )
        return list(self.db.execute(stmt).scalars().all())

    def find_available_for_slot(
        self,
        min_capacity: int,
        booking_date: date,
        slot: str,
    ) -> list[DiningTable]:
        taken = (
            select(Booking.id)
            .where(Booking.table_id == DiningTable.id)
            .where(*active_on_slot(booking_date, slot))
            .exists()
        )
        stmt = (
            select(DiningTable)
            .where(DiningTable.status == TableStatus.AVAILABLE)
            .where(DiningTable.capacity >= min_capacity)
            .where(~taken)
            .order_by(DiningTable.capacity, DiningTable.number)
        )
        return list(self.db.execute(stmt).scalars().all())

    def add(self, table: DiningTable) -> DiningTable:
        self.db.add(table)
        return table
