"""Synchronous answers returned by ``Dispatcher.submit``.

The final delivery result is asynchronous: callers poll the state store
(``Dispatcher.lookup``) for it.
"""

from dataclasses import dataclass

from dispatch_shared.enums import DeliveryState


@dataclass(frozen=True, slots=True)
class Accepted:
    """The request is stored; ``state`` is the record's state on return."""

    duplicate: bool
    state: DeliveryState


@dataclass(frozen=True, slots=True)
class RateLimited:
    """The channel is at its rate limit; the send is deferred, not failed."""

    retry_after_ms: int


@dataclass(frozen=True, slots=True)
class Rejected:
    """The request is malformed; nothing was stored."""

    reason: str


DispatchOutcome = Accepted | RateLimited | Rejected
