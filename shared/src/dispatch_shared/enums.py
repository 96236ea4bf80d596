from enum import StrEnum


class Channel(StrEnum):
    SMS = "sms"
    EMAIL = "email"
    WHATSAPP = "whatsapp"


class DeliveryState(StrEnum):
    PENDING = "pending"
    SENDING = "sending"
    PENDING_RETRY = "pending_retry"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


TERMINAL_STATES: frozenset[DeliveryState] = frozenset(
    {DeliveryState.SUCCEEDED, DeliveryState.FAILED}
)

# States from which a new adapter attempt may start.
RESUMABLE_STATES: frozenset[DeliveryState] = frozenset(
    {DeliveryState.PENDING, DeliveryState.PENDING_RETRY}
)


class ErrorClass(StrEnum):
    TRANSIENT = "transient"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"
