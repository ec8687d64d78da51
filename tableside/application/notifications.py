import json
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from sqlalchemy.orm import Session, sessionmaker

from tableside.domain.clock import Clock
from tableside.domain.exceptions import FatalError, NotFoundError
from tableside.infrastructure.db.models import OutboxEvent
from tableside.infrastructure.db.session import session_scope
from tableside.infrastructure.notifications.notifiers import Notifier
from tableside.infrastructure.repositories.outbox_repository import OutboxRepository

logger = logging.getLogger(__name__)

BOOKING_CREATED = "BOOKING_CREATED"
BOOKING_CONFIRMED = "BOOKING_CONFIRMED"
BOOKING_CANCELLED = "BOOKING_CANCELLED"
BOOKING_CHECKED_IN = "BOOKING_CHECKED_IN"
BOOKING_COMPLETED = "BOOKING_COMPLETED"
BOOKING_NO_SHOW = "BOOKING_NO_SHOW"
ORDER_PLACED = "ORDER_PLACED"
ORDER_STATUS_CHANGED = "ORDER_STATUS_CHANGED"
PAYMENT_CONFIRMED = "PAYMENT_CONFIRMED"
PAYMENT_FAILED = "PAYMENT_FAILED"


@dataclass(frozen=True)
class PendingNotification:
    outbox_id: str
    event_type: str
    payload: dict


class NotificationDispatcher:
    """
    Notifications are written to the outbox inside the core transaction and
    delivered after commit on a background pool. Delivery failures are
    logged and recorded on the outbox row; they never reach the caller.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        notifier: Notifier,
        clock: Clock,
        max_workers: int = 4,
    ):
        self.session_factory = session_factory
        self.notifier = notifier
        self.clock = clock
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="notify",
        )

    def record(
        self,
        db: Session,
        aggregate_type: str,
        aggregate_id: str,
        event_type: str,
        payload: dict,
        dedupe_key: str,
    ) -> PendingNotification | None:
        event = OutboxRepository(db).add_event(
            aggregate_type=aggregate_type,
            aggregate_id=aggregate_id,
            event_type=event_type,
            payload=payload,
            dedupe_key=dedupe_key,
            created_at=self.clock.now(),
        )
        if event is None:
            return None
        db.flush()
        return PendingNotification(
            outbox_id=event.id,
            event_type=event_type,
            payload=json.loads(event.payload),
        )

    def publish(self, *notifications: PendingNotification | None) -> None:
        for notification in notifications:
            if notification is None:
                continue
            try:
                self._executor.submit(self._deliver, notification)
            except RuntimeError:
                logger.warning(
                    "Notification pool is shut down; %s stays pending in the outbox. outbox_id=%s",
                    notification.event_type,
                    notification.outbox_id,
                )

    def _deliver(self, notification: PendingNotification) -> None:
        try:
            self.notifier.notify(notification.event_type, notification.payload)
        except Exception as exc:
            logger.warning(
                "Notification delivery failed. event=%s outbox_id=%s error=%s",
                notification.event_type,
                notification.outbox_id,
                exc,
            )
            self._mark(notification.outbox_id, "FAILED", str(exc))
            return
        self._mark(notification.outbox_id, "PUBLISHED", None)

    def _mark(self, outbox_id: str, status: str, error: str | None) -> None:
        try:
            with session_scope(
                self.session_factory,
                "mark_outbox_event",
                outbox_id=outbox_id,
            ) as db:
                event = OutboxRepository(db).get_by_id(outbox_id)
                if event is None:
                    return
                event.status = status
                event.attempts += 1
                event.last_error = error
                if status == "PUBLISHED":
                    event.published_at = self.clock.now()
        except FatalError:
            # already logged by session_scope
            pass

    # -------------------------------------------
    # Outbox inspection
    # -------------------------------------------
    def list_events(self, status: str = "PENDING", limit: int = 50) -> list[OutboxEvent]:
        safe_limit = max(1, min(limit, 200))
        with session_scope(self.session_factory, "list_outbox_events", status=status) as db:
            return OutboxRepository(db).list_by_status(status, safe_limit)

    def mark_published(self, event_id: str) -> OutboxEvent:
        """Manual acknowledgement for rows delivered by an external relay."""
        with session_scope(self.session_factory, "mark_outbox_published", outbox_id=event_id) as db:
            event = OutboxRepository(db).get_by_id(event_id)
            if not event:
                raise NotFoundError("outbox event", event_id)
            event.status = "PUBLISHED"
            event.published_at = self.clock.now()
            event.attempts += 1
            return event

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
