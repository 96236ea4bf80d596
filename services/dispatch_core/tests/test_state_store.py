"""Tests for the in-memory and SQL delivery state stores."""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy.orm import Session

from dispatch_shared.db.models import DeliveryRecordRow
from dispatch_shared.enums import Channel, DeliveryState, ErrorClass

from dispatch_core.adapters.base import ProviderResult
from dispatch_core.exceptions import InvalidTransition, RecordNotFound
from dispatch_core.state_store import (
    DeliveryStateStore,
    InMemoryStateStore,
    SqlStateStore,
)
from dispatch_core.state_store.base import StripedLocks, utcnow

TRANSIENT = ProviderResult.error(ErrorClass.TRANSIENT, "HTTP 503")
PERMANENT = ProviderResult.error(ErrorClass.PERMANENT, "HTTP 400 code 21211")


@pytest.fixture(params=["memory", "sql"])
def store(request: pytest.FixtureRequest) -> DeliveryStateStore:
    if request.param == "memory":
        return InMemoryStateStore()
    return SqlStateStore(request.getfixturevalue("session_factory"))


class TestGetOrCreate:
    def test_creates_pending_record(self, store: DeliveryStateStore) -> None:
        record, created = store.get_or_create("k1", Channel.SMS, 3)

        assert created is True
        assert record.idempotency_key == "k1"
        assert record.state == DeliveryState.PENDING
        assert record.attempts == 0
        assert record.max_attempts == 3

    def test_second_call_returns_existing(self, store: DeliveryStateStore) -> None:
        store.get_or_create("k1", Channel.SMS, 3)

        record, created = store.get_or_create("k1", Channel.EMAIL, 9)

        assert created is False
        assert record.channel == Channel.SMS
        assert record.max_attempts == 3

    def test_get_unknown_key(self, store: DeliveryStateStore) -> None:
        assert store.get("missing") is None


class TestMarkAttempt:
    def test_moves_to_sending_and_counts(self, store: DeliveryStateStore) -> None:
        store.get_or_create("k1", Channel.SMS, 3)

        attempts = store.mark_attempt("k1")

        assert attempts == 1
        assert store.get("k1").state == DeliveryState.SENDING

    def test_second_attempt_while_sending_is_rejected(
        self, store: DeliveryStateStore
    ) -> None:
        store.get_or_create("k1", Channel.SMS, 3)
        store.mark_attempt("k1")

        with pytest.raises(InvalidTransition):
            store.mark_attempt("k1")

        assert store.get("k1").attempts == 1

    def test_unknown_key_raises(self, store: DeliveryStateStore) -> None:
        with pytest.raises(RecordNotFound):
            store.mark_attempt("missing")

    def test_terminal_record_cannot_be_attempted(
        self, store: DeliveryStateStore
    ) -> None:
        store.get_or_create("k1", Channel.SMS, 3)
        store.mark_attempt("k1")
        store.mark_result("k1", ProviderResult.ok("SM1"))

        with pytest.raises(InvalidTransition):
            store.mark_attempt("k1")


class TestMarkResult:
    def test_success_records_message_id(self, store: DeliveryStateStore) -> None:
        store.get_or_create("k1", Channel.SMS, 3)
        store.mark_attempt("k1")

        record = store.mark_result("k1", ProviderResult.ok("SM1"))

        assert record.state == DeliveryState.SUCCEEDED
        assert record.provider_message_id == "SM1"
        assert record.last_error is None
        assert record.error_class is None

    def test_transient_with_budget_is_pending_retry(
        self, store: DeliveryStateStore
    ) -> None:
        store.get_or_create("k1", Channel.SMS, 3)
        store.mark_attempt("k1")

        record = store.mark_result("k1", TRANSIENT)

        assert record.state == DeliveryState.PENDING_RETRY
        assert record.last_error == "HTTP 503"
        assert record.error_class == ErrorClass.TRANSIENT
        assert store.get("k1").state == DeliveryState.PENDING_RETRY

    def test_success_after_retry_clears_error(self, store: DeliveryStateStore) -> None:
        store.get_or_create("k1", Channel.SMS, 3)
        store.mark_attempt("k1")
        store.mark_result("k1", TRANSIENT)
        store.mark_attempt("k1")

        record = store.mark_result("k1", ProviderResult.ok("SM2"))

        assert record.state == DeliveryState.SUCCEEDED
        assert record.attempts == 2
        assert record.last_error is None

    def test_last_attempt_failure_is_terminal(self, store: DeliveryStateStore) -> None:
        store.get_or_create("k1", Channel.SMS, 1)
        store.mark_attempt("k1")

        record = store.mark_result("k1", TRANSIENT)

        assert record.state == DeliveryState.FAILED
        assert record.attempts == 1

    def test_permanent_is_terminal(self, store: DeliveryStateStore) -> None:
        store.get_or_create("k1", Channel.SMS, 3)
        store.mark_attempt("k1")

        record = store.mark_result("k1", PERMANENT)

        assert record.state == DeliveryState.FAILED
        assert record.error_class == ErrorClass.PERMANENT

    def test_result_without_attempt_is_rejected(
        self, store: DeliveryStateStore
    ) -> None:
        store.get_or_create("k1", Channel.SMS, 3)

        with pytest.raises(InvalidTransition):
            store.mark_result("k1", ProviderResult.ok("SM1"))

    def test_record_serializes(self, store: DeliveryStateStore) -> None:
        store.get_or_create("k1", Channel.SMS, 3)
        store.mark_attempt("k1")
        store.mark_result("k1", TRANSIENT)

        data = store.get("k1").to_dict()

        assert data["state"] == "pending_retry"
        assert data["channel"] == "sms"
        assert data["error_class"] == "transient"
        assert data["attempts"] == 1
        assert isinstance(data["first_seen_at"], str)


class TestMarkAbandoned:
    def test_pending_retry_record_fails_keeping_error_class(
        self, store: DeliveryStateStore
    ) -> None:
        store.get_or_create("k1", Channel.SMS, 3)
        store.mark_attempt("k1")
        store.mark_result("k1", TRANSIENT)

        record = store.mark_abandoned("k1", "Retry could not be scheduled")

        assert record.state == DeliveryState.FAILED
        assert record.attempts == 1
        assert record.error_class == ErrorClass.TRANSIENT
        assert record.last_error == "Retry could not be scheduled"
        assert store.get("k1").state == DeliveryState.FAILED

    def test_pending_record_fails_without_attempt(
        self, store: DeliveryStateStore
    ) -> None:
        store.get_or_create("k1", Channel.SMS, 3)

        record = store.mark_abandoned("k1", "Deferred send could not be scheduled")

        assert record.state == DeliveryState.FAILED
        assert record.attempts == 0
        assert record.error_class is None

    def test_sending_record_cannot_be_abandoned(
        self, store: DeliveryStateStore
    ) -> None:
        store.get_or_create("k1", Channel.SMS, 3)
        store.mark_attempt("k1")

        with pytest.raises(InvalidTransition):
            store.mark_abandoned("k1", "too late")

        assert store.get("k1").state == DeliveryState.SENDING

    def test_unknown_key_raises(self, store: DeliveryStateStore) -> None:
        with pytest.raises(RecordNotFound):
            store.mark_abandoned("missing", "gone")


class TestInMemoryConcurrency:
    def test_only_one_creator_per_key(self) -> None:
        store = InMemoryStateStore()
        barrier = threading.Barrier(16)

        def create(_: int) -> bool:
            barrier.wait()
            return store.get_or_create("k1", Channel.SMS, 3)[1]

        with ThreadPoolExecutor(max_workers=16) as pool:
            created = list(pool.map(create, range(16)))

        assert created.count(True) == 1
        assert len(store) == 1

    def test_only_one_attempt_wins(self) -> None:
        store = InMemoryStateStore()
        store.get_or_create("k1", Channel.SMS, 3)
        barrier = threading.Barrier(8)

        def attempt(_: int) -> bool:
            barrier.wait()
            try:
                store.mark_attempt("k1")
            except InvalidTransition:
                return False
            return True

        with ThreadPoolExecutor(max_workers=8) as pool:
            wins = list(pool.map(attempt, range(8)))

        assert wins.count(True) == 1
        assert store.get("k1").attempts == 1


class TestSqlStateStore:
    def test_persists_to_delivery_records(
        self, session_factory, db_session: Session
    ) -> None:
        store = SqlStateStore(session_factory)
        store.get_or_create("k1", Channel.EMAIL, 2)
        store.mark_attempt("k1")
        store.mark_result("k1", PERMANENT)

        row = db_session.get(DeliveryRecordRow, "k1")

        assert row.state == DeliveryState.FAILED
        assert row.attempts == 1
        assert row.error_class == ErrorClass.PERMANENT
        assert row.last_error == "HTTP 400 code 21211"

    def test_sees_rows_written_by_another_process(
        self, session_factory, db_session: Session
    ) -> None:
        store = SqlStateStore(session_factory)
        now = utcnow()
        db_session.add(
            DeliveryRecordRow(
                idempotency_key="k1",
                channel=Channel.SMS,
                state=DeliveryState.PENDING_RETRY,
                attempts=1,
                max_attempts=3,
                first_seen_at=now,
                updated_at=now,
            )
        )
        db_session.flush()

        record, created = store.get_or_create("k1", Channel.SMS, 3)

        assert created is False
        assert record.state == DeliveryState.PENDING_RETRY
        assert store.mark_attempt("k1") == 2


class TestStripedLocks:
    def test_same_key_maps_to_same_lock(self) -> None:
        locks = StripedLocks(8)

        assert locks("order-1001") is locks("order-1001")

    def test_lock_pool_does_not_grow_with_keys(self) -> None:
        locks = StripedLocks(8)

        seen = {id(locks(f"order-{n}")) for n in range(500)}

        assert len(locks) == 8
        assert len(seen) <= 8

    def test_rejects_empty_pool(self) -> None:
        with pytest.raises(ValueError):
            StripedLocks(0)

    @pytest.mark.parametrize("kind", ["memory", "sql"])
    def test_store_lock_table_is_bounded(
        self, kind: str, request: pytest.FixtureRequest
    ) -> None:
        if kind == "memory":
            store = InMemoryStateStore(lock_stripes=16)
        else:
            factory = request.getfixturevalue("session_factory")
            store = SqlStateStore(factory, lock_stripes=16)

        for n in range(500):
            store.get_or_create(f"order-{n}", Channel.SMS, 3)

        assert len(store._locks) == 16
