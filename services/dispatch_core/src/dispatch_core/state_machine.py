"""Delivery record lifecycle.

    pending ──> sending ──> succeeded
                  │   ├───> failed
                  │   └───> pending_retry ──> sending
                  └ (one adapter call per visit)

    pending, pending_retry ──> failed   (next attempt could not be scheduled)

``succeeded`` and ``failed`` are terminal. Both state store implementations
route every state change through this module.
"""

from dispatch_shared.enums import DeliveryState, ErrorClass

from dispatch_core.adapters.base import ProviderResult
from dispatch_core.exceptions import InvalidTransition

ALLOWED_TRANSITIONS: dict[DeliveryState, frozenset[DeliveryState]] = {
    DeliveryState.PENDING: frozenset({DeliveryState.SENDING, DeliveryState.FAILED}),
    DeliveryState.SENDING: frozenset(
        {
            DeliveryState.SUCCEEDED,
            DeliveryState.PENDING_RETRY,
            DeliveryState.FAILED,
        }
    ),
    DeliveryState.PENDING_RETRY: frozenset(
        {DeliveryState.SENDING, DeliveryState.FAILED}
    ),
    DeliveryState.SUCCEEDED: frozenset(),
    DeliveryState.FAILED: frozenset(),
}


def check_transition(key: str, current: str, target: DeliveryState) -> DeliveryState:
    """Return *target* if the move is allowed, else raise InvalidTransition."""
    if target not in ALLOWED_TRANSITIONS[DeliveryState(current)]:
        raise InvalidTransition(key, current, target)
    return target


def begin_attempt(key: str, current: str) -> DeliveryState:
    """Enter ``sending``; only ``pending`` and ``pending_retry`` may do so."""
    return check_transition(key, current, DeliveryState.SENDING)


def resolve_result(
    key: str,
    current: str,
    result: ProviderResult,
    attempts: int,
    max_attempts: int,
) -> DeliveryState:
    """Pick the state that follows an adapter call.

    A retryable error only leads to ``pending_retry`` while the attempt
    budget has room; the last allowed attempt fails terminally.
    """
    if result.success:
        target = DeliveryState.SUCCEEDED
    elif result.error_class == ErrorClass.PERMANENT:
        target = DeliveryState.FAILED
    elif attempts < max_attempts:
        target = DeliveryState.PENDING_RETRY
    else:
        target = DeliveryState.FAILED
    return check_transition(key, current, target)


def abandon(key: str, current: str) -> DeliveryState:
    """Fail a waiting record whose next attempt could not be scheduled.

    A record in ``sending`` belongs to whoever is calling the adapter and
    cannot be abandoned.
    """
    return check_transition(key, current, DeliveryState.FAILED)
