# tableside/infrastructure/repositories/outbox_repository.py

import json
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from tableside.infrastructure.db.models import OutboxEvent


class OutboxRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, event_id: str) -> OutboxEvent | None:
        stmt = select(OutboxEvent).where(OutboxEvent.id == event_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_by_dedupe_key(self, dedupe_key: str) -> OutboxEvent | None:
        stmt = select(OutboxEvent).where(OutboxEvent.dedupe_key == dedupe_key)
        return self.db.execute(stmt).scalar_one_or_none()

    def add_event(
        self,
        aggregate_type: str,
        aggregate_id: str,
        event_type: str,
        payload: dict,
        dedupe_key: str,
        created_at: datetime,
    ) -> OutboxEvent | None:
        """Returns None when an event with the same dedupe key already exists."""
        if self.get_by_dedupe_key(dedupe_key):
            return None

        event = OutboxEvent(
            aggregate_type=aggregate_type,
            aggregate_id=aggregate_id,
            event_type=event_type,
            payload=json.dumps(payload, sort_keys=True, default=str),
            dedupe_key=dedupe_key,
            status="PENDING",
            attempts=0,
            created_at=created_at,
        )
        self.db.add(event)
        return event

    def list_by_status(self, status: str, limit: int) -> list[OutboxEvent]:
        stmt = (
            select(OutboxEvent)
            .where(OutboxEvent.status == status)
            .order_by(OutboxEvent.created_at)
            .limit(limit)
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_for_aggregate(self, aggregate_id: str) -> list[OutboxEvent]:
        stmt = (
            select(OutboxEvent)
            .where(OutboxEvent.aggregate_id == aggregate_id)
            .order_by(OutboxEvent.created_at)
        )
        return list(self.db.execute(stmt).scalars().all())
