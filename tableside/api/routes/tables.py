from datetime import date

from fastapi import APIRouter, Depends

from tableside.api.dependencies import get_container
from tableside.api.schemas.schemas import TableCreate, TableResponse
from tableside.application.container import Container
from tableside.domain.exceptions import ValidationError
from tableside.infrastructure.db.models import DiningTable

router = APIRouter(prefix="/tables", tags=["tables"])


def table_response(table: DiningTable) -> TableResponse:
    return TableResponse(
        id=table.id,
        number=table.number,
        capacity=table.capacity,
        location=table.location,
        description=table.description,
        status=table.status.value,
    )


@router.post("", response_model=TableResponse)
def create_table(
    request: TableCreate,
    container: Container = Depends(get_container),
):
    table = container.reservations.add_table(
        number=request.number,
        capacity=request.capacity,
        location=request.location,
        description=request.description,
    )
    return table_response(table)


@router.get("", response_model=list[TableResponse])
def list_tables(container: Container = Depends(get_container)):
    return [table_response(table) for table in container.reservations.list_tables()]


@router.get("/available", response_model=list[TableResponse])
def available_tables(
    min_capacity: int = 1,
    booking_date: date | None = None,
    slot: str | None = None,
    container: Container = Depends(get_container),
):
    if (booking_date is None) != (slot is None):
        raise ValidationError("booking_date and slot must be given together.")

    if booking_date is None:
        tables = container.reservations.find_available(min_capacity)
    else:
        tables = container.reservations.available_tables(min_capacity, booking_date, slot)
    return [table_response(table) for table in tables]


@router.get("/{table_id}", response_model=TableResponse)
def get_table(
    table_id: str,
    container: Container = Depends(get_container),
):
    return table_response(container.reservations.get_table(table_id))
