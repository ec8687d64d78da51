from datetime import date, datetime, timezone
from uuid import uuid4


class Clock:
    """Supplies timestamps and identifiers to every engine."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def today(self) -> date:
        return self.now().date()

    def new_id(self) -> str:
        return str(uuid4())


class FixedClock(Clock):
    """A clock frozen at one instant. Used by scripts and tests."""

    def __init__(self, instant: datetime):
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        self.instant = instant

    def now(self) -> datetime:
        return self.instant

    def advance_to(self, instant: datetime) -> None:
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        self.instant = instant
