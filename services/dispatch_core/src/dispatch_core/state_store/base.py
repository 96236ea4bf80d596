"""Delivery record snapshot and the state store contract."""

import datetime
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass

from dispatch_shared.enums import DeliveryState, ErrorClass

from dispatch_core.adapters.base import ProviderResult


@dataclass(frozen=True, slots=True)
class DeliveryRecord:
    """Read-only snapshot of one message's delivery state.

    The store owns the live record; everything it hands out is a copy.
    """

    idempotency_key: str
    channel: str
    state: DeliveryState
    attempts: int
    max_attempts: int
    first_seen_at: datetime.datetime
    updated_at: datetime.datetime
    last_error: str | None = None
    error_class: ErrorClass | None = None
    provider_message_id: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "idempotency_key": self.idempotency_key,
            "channel": str(self.channel),
            "state": str(self.state),
            "attempts": self.attempts,
            "max_attempts": self.max_attempts,
            "last_error": self.last_error,
            "error_class": str(self.error_class) if self.error_class else None,
            "provider_message_id": self.provider_message_id,
            "first_seen_at": self.first_seen_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


class DeliveryStateStore(ABC):
    """Owns delivery records, keyed by idempotency key.

    Every operation is atomic per key. Implementations must serialise
    concurrent calls for the same key without putting every key behind
    one lock.
    """

    @abstractmethod
    def get_or_create(
        self, idempotency_key: str, channel: str, max_attempts: int
    ) -> tuple[DeliveryRecord, bool]:
        """Return the record for *idempotency_key*, creating it if missing.

        The boolean is True only for the caller that created the record.
        """

    @abstractmethod
    def get(self, idempotency_key: str) -> DeliveryRecord | None:
        """Return a snapshot of the record, or None if the key is unknown."""

    @abstractmethod
    def mark_attempt(self, idempotency_key: str) -> int:
        """Move the record to ``sending`` and return the new attempt count.

        Raises RecordNotFound for an unknown key and InvalidTransition unless
        the record is ``pending`` or ``pending_retry``.
        """

    @abstractmethod
    def mark_result(
        self, idempotency_key: str, result: ProviderResult
    ) -> DeliveryRecord:
        """Apply an adapter outcome to a ``sending`` record.

        Moves to ``succeeded``, ``pending_retry`` or ``failed`` according to
        the classification and the remaining attempt budget.
        """

    @abstractmethod
    def mark_abandoned(self, idempotency_key: str, reason: str) -> DeliveryRecord:
        """Fail a ``pending`` or ``pending_retry`` record that cannot be resumed.

        Used when no retry could be scheduled. The error class of the last
        attempt, if any, is kept; *reason* becomes ``last_error``.
        """


class StripedLocks:
    """Fixed pool of locks; a key always maps to the same lock.

    Memory stays constant however many keys pass through. Two keys that
    share a stripe serialise, which is safe because no store operation
    holds more than one key's lock.
    """

    def __init__(self, stripes: int = 64) -> None:
        if stripes < 1:
            raise ValueError("stripes must be >= 1")
        self._locks = tuple(threading.Lock() for _ in range(stripes))

    def __call__(self, idempotency_key: str) -> threading.Lock:
        return self._locks[hash(idempotency_key) % len(self._locks)]

    def __len__(self) -> int:
        return len(self._locks)


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)
