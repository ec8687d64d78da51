# tableside/domain/state_machine.py

from enum import Enum
from typing import Dict, FrozenSet, Set, Type

from tableside.domain.exceptions import InvalidStateError


class TableStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    OCCUPIED = "OCCUPIED"
    RESERVED = "RESERVED"
    MAINTENANCE = "MAINTENANCE"


class BookingStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PREPARING = "PREPARING"
    READY = "READY"
    SERVED = "SERVED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    CARD = "CARD"
    UPI = "UPI"
    NET_BANKING = "NET_BANKING"
    RAZORPAY = "RAZORPAY"


ACTIVE_BOOKING_STATUSES: FrozenSet[BookingStatus] = frozenset(
    {
        BookingStatus.PENDING,
        BookingStatus.CONFIRMED,
        BookingStatus.IN_PROGRESS,
    }
)


class StateMachine:
    """
    Central lifecycle controller for one entity's status.
    Subclasses define the legal state transitions.
    """

    entity: str = "entity"
    status_type: Type[Enum] = Enum
    _ALLOWED_TRANSITIONS: Dict[Enum, Set[Enum]] = {}

    @classmethod
    def can_transition(cls, from_status: Enum, to_status: Enum) -> bool:
        """
        Returns True if transition is allowed.
        """
        cls._ensure_valid_status(from_status)
        cls._ensure_valid_status(to_status)

        return to_status in cls._ALLOWED_TRANSITIONS.get(from_status, set())

    @classmethod
    def validate_transition(cls, from_status: Enum, to_status: Enum) -> None:
        """
        Raises InvalidStateError if transition is illegal.
        """
        if not cls.can_transition(from_status, to_status):
            raise InvalidStateError(
                entity=cls.entity,
                from_state=from_status.value,
                to_state=to_status.value,
            )

    @classmethod
    def is_terminal(cls, status: Enum) -> bool:
        """
        Returns True if the state is terminal (no further transitions allowed).
        """
        cls._ensure_valid_status(status)
        return len(cls._ALLOWED_TRANSITIONS.get(status, set())) == 0

    @classmethod
    def get_allowed_transitions(cls, status: Enum) -> Set[Enum]:
        """
        Returns allowed next states from current state.
        """
        cls._ensure_valid_status(status)
        return set(cls._ALLOWED_TRANSITIONS.get(status, set()))

    @classmethod
    def parse(cls, current: Enum, raw: str) -> Enum:
        """
        Resolve a client supplied status name. Unknown names are reported
        as an illegal transition from the current state.
        """
        try:
            return cls.status_type(raw.strip().upper())
        except (ValueError, AttributeError):
            raise InvalidStateError(
                entity=cls.entity,
                from_state=current.value,
                to_state=str(raw),
            ) from None

    @classmethod
    def _ensure_valid_status(cls, status: Enum) -> None:
        if not isinstance(status, cls.status_type):
            raise TypeError(
                f"Expected {cls.status_type.__name__}, got {type(status)}"
            )


class BookingStateMachine(StateMachine):
    entity = "booking"
    status_type = BookingStatus

    _ALLOWED_TRANSITIONS = {
        BookingStatus.PENDING: {
            BookingStatus.CONFIRMED,
            BookingStatus.IN_PROGRESS,
            BookingStatus.CANCELLED,
            BookingStatus.NO_SHOW,
        },
        BookingStatus.CONFIRMED: {
            BookingStatus.IN_PROGRESS,
            BookingStatus.CANCELLED,
            BookingStatus.NO_SHOW,
        },
        BookingStatus.IN_PROGRESS: {
            BookingStatus.COMPLETED,
        },
        BookingStatus.COMPLETED: set(),
        BookingStatus.CANCELLED: set(),
        BookingStatus.NO_SHOW: set(),
    }


class OrderStateMachine(StateMachine):
    entity = "order"
    status_type = OrderStatus

    _ALLOWED_TRANSITIONS = {
        OrderStatus.PENDING: {
            OrderStatus.CONFIRMED,
            OrderStatus.CANCELLED,
        },
        OrderStatus.CONFIRMED: {
            OrderStatus.PREPARING,
            OrderStatus.CANCELLED,
        },
        OrderStatus.PREPARING: {
            OrderStatus.READY,
        },
        OrderStatus.READY: {
            OrderStatus.SERVED,
        },
        OrderStatus.SERVED: {
            OrderStatus.COMPLETED,
        },
        OrderStatus.COMPLETED: set(),
        OrderStatus.CANCELLED: set(),
    }


class PaymentStateMachine(StateMachine):
    entity = "payment"
    status_type = PaymentStatus

    _ALLOWED_TRANSITIONS = {
        PaymentStatus.PENDING: {
            PaymentStatus.SUCCESS,
            PaymentStatus.FAILED,
            PaymentStatus.CANCELLED,
        },
        # a failed attempt may be retried with a fresh intent
        PaymentStatus.FAILED: {
            PaymentStatus.PENDING,
            PaymentStatus.SUCCESS,
            PaymentStatus.CANCELLED,
        },
        PaymentStatus.SUCCESS: {
            PaymentStatus.REFUNDED,
        },
        PaymentStatus.CANCELLED: set(),
        PaymentStatus.REFUNDED: set(),
    }
