

class TablesideError(Exception):
    """
    Base exception for all domain-level errors
    inside the reservation and fulfillment engine.
    """

    code = "ERROR"

    def __init__(self, message: str, code: str | None = None):
        if code is not None:
            self.code = code
        self.message = message
        super().__init__(message)


class ValidationError(TablesideError):
    """Malformed or missing input. Nothing was changed."""

    code = "VALIDATION_FAILED"


class NotFoundError(TablesideError):
    """A referenced entity id does not exist."""

    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class ConflictError(TablesideError):
    """
    Raised when accepting a request would break an invariant:
    slot taken, second active booking, already paid, ...
    """

    code = "CONFLICT"


class InvalidStateError(TablesideError):
    """
    Raised when an illegal state transition is attempted.
    """

    code = "INVALID_STATE"

    def __init__(self, entity: str, from_state: str, to_state: str):
        self.entity = entity
        self.from_state = from_state
        self.to_state = to_state

        message = (
            f"Illegal {entity} state transition attempted: "
            f"{from_state} -> {to_state}"
        )
        super().__init__(message)


class GatewayError(TablesideError):
    """The external payment provider failed or timed out. Retryable."""

    code = "GATEWAY_FAILURE"


class FatalError(TablesideError):
    """Storage or infrastructure failure. The operation was rolled back."""

    code = "INTERNAL_FAILURE"


# Conflict codes, surfaced to clients so they can react differently.
ACTIVE_BOOKING_EXISTS = "ACTIVE_BOOKING_EXISTS"
TABLE_UNAVAILABLE = "TABLE_UNAVAILABLE"
SLOT_TAKEN = "SLOT_TAKEN"
ALREADY_PAID = "ALREADY_PAID"
DUPLICATE_TABLE_NUMBER = "DUPLICATE_TABLE_NUMBER"
RESOURCE_BUSY = "RESOURCE_BUSY"
PAYMENT_REF_CONSUMED = "PAYMENT_REF_CONSUMED"
