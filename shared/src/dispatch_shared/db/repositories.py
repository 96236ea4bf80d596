"""Data access repositories with constructor-injected sessions."""

from sqlalchemy import select
from sqlalchemy.orm import Session

from dispatch_shared.db.models import DeliveryRecordRow, MessageTemplate


class DeliveryRecordRepository:
    """Data access for the delivery_records table."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def create(self, row: DeliveryRecordRow) -> DeliveryRecordRow:
        """Add a new record and flush so a duplicate key fails immediately."""
        self._session.add(row)
        self._session.flush()
        return row

    def get(self, idempotency_key: str) -> DeliveryRecordRow | None:
        """Fetch a record by idempotency key."""
        return self._session.get(DeliveryRecordRow, idempotency_key)

    def get_for_update(self, idempotency_key: str) -> DeliveryRecordRow | None:
        """Fetch a record and lock its row until the transaction ends.

        The row lock is a no-op on SQLite; PostgreSQL serialises concurrent
        transitions of the same key across processes.
        """
        stmt = (
            select(DeliveryRecordRow)
            .where(DeliveryRecordRow.idempotency_key == idempotency_key)
            .with_for_update()
        )
        return self._session.scalars(stmt).first()


class TemplateRepository:
    """Data access for message templates."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get_by_name_and_channel(
        self, name: str, channel: str
    ) -> MessageTemplate | None:
        """Fetch a single active template for name + channel."""
        stmt = select(MessageTemplate).where(
            MessageTemplate.name == name,
            MessageTemplate.channel == channel,
            MessageTemplate.is_active.is_(True),
        )
        return self._session.scalars(stmt).first()
