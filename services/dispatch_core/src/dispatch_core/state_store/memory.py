"""In-memory delivery state store with per-key locking."""

import dataclasses

from dispatch_shared.enums import DeliveryState

from dispatch_core import state_machine
from dispatch_core.adapters.base import ProviderResult
from dispatch_core.exceptions import RecordNotFound
from dispatch_core.state_store.base import (
    DeliveryRecord,
    DeliveryStateStore,
    StripedLocks,
    utcnow,
)


class InMemoryStateStore(DeliveryStateStore):
    """Process-local store for a single dispatcher process and for tests.

    Keys are serialised through a fixed pool of striped locks, so unrelated
    keys rarely wait on each other and the lock table never grows.
    """

    def __init__(self, lock_stripes: int = 64) -> None:
        self._records: dict[str, DeliveryRecord] = {}
        self._locks = StripedLocks(lock_stripes)

    def get_or_create(
        self, idempotency_key: str, channel: str, max_attempts: int
    ) -> tuple[DeliveryRecord, bool]:
        with self._locks(idempotency_key):
            existing = self._records.get(idempotency_key)
            if existing is not None:
                return existing, False
            now = utcnow()
            record = DeliveryRecord(
                idempotency_key=idempotency_key,
                channel=channel,
                state=DeliveryState.PENDING,
                attempts=0,
                max_attempts=max_attempts,
                first_seen_at=now,
                updated_at=now,
            )
            self._records[idempotency_key] = record
            return record, True

    def get(self, idempotency_key: str) -> DeliveryRecord | None:
        return self._records.get(idempotency_key)

    def mark_attempt(self, idempotency_key: str) -> int:
        with self._locks(idempotency_key):
            record = self._require(idempotency_key)
            state = state_machine.begin_attempt(idempotency_key, record.state)
            updated = dataclasses.replace(
                record,
                state=state,
                attempts=record.attempts + 1,
                updated_at=utcnow(),
            )
            self._records[idempotency_key] = updated
            return updated.attempts

    def mark_result(
        self, idempotency_key: str, result: ProviderResult
    ) -> DeliveryRecord:
        with self._locks(idempotency_key):
            record = self._require(idempotency_key)
            state = state_machine.resolve_result(
                idempotency_key,
                record.state,
                result,
                record.attempts,
                record.max_attempts,
            )
            if result.success:
                updated = dataclasses.replace(
                    record,
                    state=state,
                    provider_message_id=result.message_id,
                    last_error=None,
                    error_class=None,
                    updated_at=utcnow(),
                )
            else:
                updated = dataclasses.replace(
                    record,
                    state=state,
                    last_error=result.detail,
                    error_class=result.error_class,
                    updated_at=utcnow(),
                )
            self._records[idempotency_key] = updated
            return updated

    def mark_abandoned(self, idempotency_key: str, reason: str) -> DeliveryRecord:
        with self._locks(idempotency_key):
            record = self._require(idempotency_key)
            updated = dataclasses.replace(
                record,
                state=state_machine.abandon(idempotency_key, record.state),
                last_error=reason,
                updated_at=utcnow(),
            )
            self._records[idempotency_key] = updated
            return updated

    def _require(self, idempotency_key: str) -> DeliveryRecord:
        record = self._records.get(idempotency_key)
        if record is None:
            raise RecordNotFound(idempotency_key)
        return record

    def __len__(self) -> int:
        return len(self._records)
