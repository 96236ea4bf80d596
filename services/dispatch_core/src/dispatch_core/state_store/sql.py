"""SQLAlchemy-backed delivery state store shared across worker processes."""

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from dispatch_shared.db.models import DeliveryRecordRow
from dispatch_shared.db.repositories import DeliveryRecordRepository
from dispatch_shared.enums import DeliveryState, ErrorClass

from dispatch_core import state_machine
from dispatch_core.adapters.base import ProviderResult
from dispatch_core.exceptions import RecordNotFound
from dispatch_core.state_store.base import (
    DeliveryRecord,
    DeliveryStateStore,
    StripedLocks,
    utcnow,
)


def _to_record(row: DeliveryRecordRow) -> DeliveryRecord:
    return DeliveryRecord(
        idempotency_key=row.idempotency_key,
        channel=row.channel,
        state=DeliveryState(row.state),
        attempts=row.attempts,
        max_attempts=row.max_attempts,
        first_seen_at=row.first_seen_at,
        updated_at=row.updated_at,
        last_error=row.last_error,
        error_class=ErrorClass(row.error_class) if row.error_class else None,
        provider_message_id=row.provider_message_id,
    )


class SqlStateStore(DeliveryStateStore):
    """Delivery records in the ``delivery_records`` table.

    Uniqueness of the idempotency key is enforced by the primary key, so two
    processes racing on ``get_or_create`` see exactly one winner. Transitions
    lock the row (``SELECT ... FOR UPDATE``) for the length of one short
    transaction; an in-process striped lock avoids queueing same-process
    threads on the database.
    """

    def __init__(
        self, session_factory: sessionmaker[Session], lock_stripes: int = 64
    ) -> None:
        self._session_factory = session_factory
        self._locks = StripedLocks(lock_stripes)

    def get_or_create(
        self, idempotency_key: str, channel: str, max_attempts: int
    ) -> tuple[DeliveryRecord, bool]:
        with self._locks(idempotency_key), self._session_factory() as session:
            repo = DeliveryRecordRepository(session)
            existing = repo.get(idempotency_key)
            if existing is not None:
                return _to_record(existing), False

            now = utcnow()
            row = DeliveryRecordRow(
                idempotency_key=idempotency_key,
                channel=channel,
                state=DeliveryState.PENDING,
                attempts=0,
                max_attempts=max_attempts,
                first_seen_at=now,
                updated_at=now,
            )
            try:
                repo.create(row)
            except IntegrityError:
                # Another process inserted the same key first.
                session.rollback()
                winner = repo.get(idempotency_key)
                if winner is None:
                    raise
                return _to_record(winner), False

            record = _to_record(row)
            session.commit()
            return record, True

    def get(self, idempotency_key: str) -> DeliveryRecord | None:
        with self._session_factory() as session:
            row = DeliveryRecordRepository(session).get(idempotency_key)
            return _to_record(row) if row is not None else None

    def mark_attempt(self, idempotency_key: str) -> int:
        with self._locks(idempotency_key), self._session_factory() as session:
            row = self._require(session, idempotency_key)
            row.state = state_machine.begin_attempt(idempotency_key, row.state)
            row.attempts += 1
            row.updated_at = utcnow()
            attempts = row.attempts
            session.commit()
            return attempts

    def mark_result(
        self, idempotency_key: str, result: ProviderResult
    ) -> DeliveryRecord:
        with self._locks(idempotency_key), self._session_factory() as session:
            row = self._require(session, idempotency_key)
            row.state = state_machine.resolve_result(
                idempotency_key,
                row.state,
                result,
                row.attempts,
                row.max_attempts,
            )
            if result.success:
                row.provider_message_id = result.message_id
                row.last_error = None
                row.error_class = None
            else:
                row.last_error = result.detail
                row.error_class = result.error_class
            row.updated_at = utcnow()
            record = _to_record(row)
            session.commit()
            return record

    def mark_abandoned(self, idempotency_key: str, reason: str) -> DeliveryRecord:
        with self._locks(idempotency_key), self._session_factory() as session:
            row = self._require(session, idempotency_key)
            row.state = state_machine.abandon(idempotency_key, row.state)
            row.last_error = reason
            row.updated_at = utcnow()
            record = _to_record(row)
            session.commit()
            return record

    @staticmethod
    def _require(session: Session, idempotency_key: str) -> DeliveryRecordRow:
        row = DeliveryRecordRepository(session).get_for_update(idempotency_key)
        if row is None:
            raise RecordNotFound(idempotency_key)
        return row
