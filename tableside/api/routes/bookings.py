from fastapi import APIRouter, Depends

from tableside.api.dependencies import get_actor_id, get_container
from tableside.api.schemas.schemas import (
    BookingCreate,
    BookingResponse,
    NoShowSweepRequest,
    NoShowSweepResponse,
)
from tableside.application.container import Container
from tableside.infrastructure.db.models import Booking

router = APIRouter(prefix="/bookings", tags=["bookings"])


def booking_response(booking: Booking) -> BookingResponse:
    return BookingResponse(
        id=booking.id,
        customer_id=booking.customer_id,
        table_id=booking.table_id,
        booking_date=booking.booking_date,
        slot=booking.slot,
        duration=booking.duration,
        number_of_guests=booking.number_of_guests,
        status=booking.status.value,
        special_requests=booking.special_requests,
        created_at=booking.created_at,
    )


@router.post("", response_model=BookingResponse)
def create_booking(
    request: BookingCreate,
    customer_id: str = Depends(get_actor_id),
    container: Container = Depends(get_container),
):
    booking = container.reservations.create_booking(
        customer_id=customer_id,
        table_id=request.table_id,
        booking_date=request.booking_date,
        slot=request.slot,
        number_of_guests=request.number_of_guests,
        duration=request.duration,
        special_requests=request.special_requests,
    )
    return booking_response(booking)


@router.get("/me", response_model=list[BookingResponse])
def my_bookings(
    customer_id: str = Depends(get_actor_id),
    container: Container = Depends(get_container),
):
    return [
        booking_response(booking)
        for booking in container.reservations.customer_bookings(customer_id)
    ]


@router.get("/me/active", response_model=BookingResponse | None)
def my_active_booking(
    customer_id: str = Depends(get_actor_id),
    container: Container = Depends(get_container),
):
    booking = container.reservations.active_booking(customer_id)
    return booking_response(booking) if booking else None


@router.post("/no-shows", response_model=NoShowSweepResponse)
def sweep_no_shows(
    request: NoShowSweepRequest,
    actor_id: str = Depends(get_actor_id),
    container: Container = Depends(get_container),
):
    bookings = container.reservations.mark_no_shows(actor_id, before=request.before)
    return NoShowSweepResponse(
        count=len(bookings),
        booking_ids=[booking.id for booking in bookings],
    )


@router.get("/{booking_id}", response_model=BookingResponse)
def get_booking(
    booking_id: str,
    container: Container = Depends(get_container),
):
    return booking_response(container.reservations.get_booking(booking_id))


@router.post("/{booking_id}/confirm", response_model=BookingResponse)
def confirm_booking(
    booking_id: str,
    actor_id: str = Depends(get_actor_id),
    container: Container = Depends(get_container),
):
    return booking_response(container.reservations.confirm_booking(booking_id, actor_id))


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
def cancel_booking(
    booking_id: str,
    actor_id: str = Depends(get_actor_id),
    container: Container = Depends(get_container),
):
    return booking_response(container.reservations.cancel_booking(booking_id, actor_id))


@router.post("/{booking_id}/check-in", response_model=BookingResponse)
def check_in(
    booking_id: str,
    actor_id: str = Depends(get_actor_id),
    container: Container = Depends(get_container),
):
    return booking_response(container.reservations.check_in(booking_id, actor_id))


@router.post("/{booking_id}/check-out", response_model=BookingResponse)
def check_out(
    booking_id: str,
    actor_id: str = Depends(get_actor_id),
    container: Container = Depends(get_container),
):
    return booking_response(container.reservations.check_out(booking_id, actor_id))
