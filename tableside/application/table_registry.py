import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tableside.domain.clock import Clock
from tableside.domain.exceptions import (
    DUPLICATE_TABLE_NUMBER,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from tableside.domain.state_machine import TableStatus
from tableside.infrastructure.db.models import DiningTable
from tableside.infrastructure.repositories.table_repository import TableRepository

logger = logging.getLogger(__name__)


class TableRegistry:
    """
    Owns the physical tables and their availability state.

    No locking of its own: the reservation engine serializes transitions
    per table and calls in here inside its transaction.
    """

    def __init__(self, db: Session, clock: Clock | None = None):
        self.db = db
        self.clock = clock or Clock()
        self.table_repository = TableRepository(db)

    def get(self, table_id: str) -> DiningTable:
        table = self.table_repository.get_by_id(table_id)
        if not table:
            raise NotFoundError("table", table_id)
        return table

    def lock(self, table_id: str) -> DiningTable:
        table = self.table_repository.lock_table(table_id)
        if not table:
            raise NotFoundError("table", table_id)
        return table

    def list_tables(self) -> list[DiningTable]:
        return self.table_repository.list_all()

    def find_available(self, min_capacity: int) -> list[DiningTable]:
        return self.table_repository.find_available(min_capacity)

    def transition(self, table_id: str, new_status: TableStatus) -> DiningTable:
        table = self.get(table_id)
        if table.status != new_status:
            logger.info(
                "Table %s: %s -> %s",
                table.number,
                table.status.value,
                new_status.value,
            )
        table.status = new_status
        table.updated_at = self.clock.now()
        return table

    def create(
        self,
        number: str,
        capacity: int,
        location: str | None = None,
        description: str | None = None,
    ) -> DiningTable:
        number = (number or "").strip()
        if not number:
            raise ValidationError("Table number is required.")
        if capacity < 1:
            raise ValidationError("Table capacity must be at least 1.")
        if self.table_repository.get_by_number(number):
            raise ConflictError(
                f"duplicate table number: {number}",
                code=DUPLICATE_TABLE_NUMBER,
            )

        now = self.clock.now()
        table = self.table_repository.add(
            DiningTable(
                id=self.clock.new_id(),
                number=number,
                capacity=capacity,
                location=location,
                description=description,
                status=TableStatus.AVAILABLE,
                created_at=now,
                updated_at=now,
            )
        )
        try:
            self.db.flush()
        except IntegrityError as exc:
            raise ConflictError(
                f"duplicate table number: {number}",
                code=DUPLICATE_TABLE_NUMBER,
            ) from exc
        return table
