from fastapi import APIRouter, Depends

from tableside.api.dependencies import get_container
from tableside.api.schemas.schemas import OutboxEventResponse
from tableside.application.container import Container
from tableside.infrastructure.db.models import OutboxEvent

router = APIRouter(prefix="/outbox", tags=["outbox"])


def outbox_event_response(item: OutboxEvent) -> OutboxEventResponse:
    return OutboxEventResponse(
        id=item.id,
        aggregate_type=item.aggregate_type,
        aggregate_id=item.aggregate_id,
        event_type=item.event_type,
        status=item.status,
        attempts=item.attempts,
        last_error=item.last_error,
        created_at=item.created_at.isoformat(),
    )


@router.get("/events", response_model=list[OutboxEventResponse])
def list_outbox_events(
    status_filter: str = "PENDING",
    limit: int = 50,
    container: Container = Depends(get_container),
):
    events = container.dispatcher.list_events(status=status_filter, limit=limit)
    return [outbox_event_response(item) for item in events]


@router.post("/events/{event_id}/mark-published", response_model=OutboxEventResponse)
def mark_outbox_event_published(
    event_id: str,
    container: Container = Depends(get_container),
):
    return outbox_event_response(container.dispatcher.mark_published(event_id))
