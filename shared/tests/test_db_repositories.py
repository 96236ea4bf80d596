import datetime

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from dispatch_shared.db.models import DeliveryRecordRow, MessageTemplate
from dispatch_shared.db.repositories import (
    DeliveryRecordRepository,
    TemplateRepository,
)
from dispatch_shared.enums import Channel, DeliveryState


def _row(key: str = "order-1001") -> DeliveryRecordRow:
    now = datetime.datetime.now(datetime.timezone.utc)
    return DeliveryRecordRow(
        idempotency_key=key,
        channel=Channel.SMS,
        state=DeliveryState.PENDING,
        attempts=0,
        max_attempts=5,
        first_seen_at=now,
        updated_at=now,
    )


class TestDeliveryRecordRepository:
    def test_create_and_get(self, db_session: Session) -> None:
        repo = DeliveryRecordRepository(db_session)
        repo.create(_row())

        found = repo.get("order-1001")

        assert found is not None
        assert found.state == DeliveryState.PENDING
        assert found.attempts == 0

    def test_get_missing_returns_none(self, db_session: Session) -> None:
        assert DeliveryRecordRepository(db_session).get("missing") is None

    def test_duplicate_key_fails_on_create(self, db_session: Session) -> None:
        repo = DeliveryRecordRepository(db_session)
        repo.create(_row())
        db_session.expunge_all()

        with pytest.raises(IntegrityError):
            repo.create(_row())

    def test_get_for_update(self, db_session: Session) -> None:
        repo = DeliveryRecordRepository(db_session)
        repo.create(_row("a"))
        repo.create(_row("b"))

        found = repo.get_for_update("b")

        assert found is not None
        assert found.idempotency_key == "b"
        assert repo.get_for_update("c") is None


class TestTemplateRepository:
    def test_returns_active_template_for_channel(self, db_session: Session) -> None:
        db_session.add_all([
            MessageTemplate(name="welcome", channel=Channel.SMS, body_template="Hi"),
            MessageTemplate(
                name="welcome", channel=Channel.EMAIL, body_template="Hello"
            ),
        ])
        db_session.flush()

        found = TemplateRepository(db_session).get_by_name_and_channel(
            "welcome", Channel.EMAIL
        )

        assert found is not None
        assert found.body_template == "Hello"

    def test_inactive_template_is_ignored(self, db_session: Session) -> None:
        db_session.add(
            MessageTemplate(
                name="legacy", channel=Channel.SMS, body_template="x", is_active=False
            )
        )
        db_session.flush()

        found = TemplateRepository(db_session).get_by_name_and_channel(
            "legacy", Channel.SMS
        )

        assert found is None
