"""Test fixtures for dispatch_core tests."""

import random
from collections.abc import Callable, Generator
from typing import Any
from unittest.mock import MagicMock

import pytest
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from dispatch_shared.db.base import Base
from dispatch_shared.enums import Channel
from dispatch_shared.messages import Envelope, NotificationRequest

from dispatch_core.adapters import AdapterRegistry
from dispatch_core.adapters.base import ChannelAdapter, ProviderResult
from dispatch_core.config import DispatchConfig, EmailSettings, SmsSettings
from dispatch_core.dispatcher import Dispatcher
from dispatch_core.rate_limiter import RateLimiter
from dispatch_core.retry import RetryScheduler
from dispatch_core.state_store import InMemoryStateStore
from dispatch_core.status_publisher import KafkaStatusPublisher
from dispatch_core.templates import InMemoryTemplateCatalog


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedAdapter(ChannelAdapter):
    """Returns queued results in order, then succeeds.

    A queued exception is raised instead of returned.
    """

    def __init__(self) -> None:
        self.results: list[ProviderResult | Exception] = []
        self.calls: list[Envelope] = []

    def script(self, *results: ProviderResult | Exception) -> None:
        self.results.extend(results)

    def send(self, envelope: Envelope) -> ProviderResult:
        self.calls.append(envelope)
        if self.results:
            outcome = self.results.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        return ProviderResult.ok(f"msg-{len(self.calls)}")


class RecordingRetryScheduler(RetryScheduler):
    """Keeps scheduled envelopes in a list; tests resume them by hand."""

    def __init__(self, config: DispatchConfig) -> None:
        super().__init__(config, rng=random.Random(7))
        self.enqueued: list[tuple[Envelope, int]] = []
        self.retries: list[tuple[str, int, int]] = []
        self.deferred: list[tuple[str, int]] = []

    def schedule_retry(self, envelope: Envelope, attempt: int) -> int:
        delay_ms = super().schedule_retry(envelope, attempt)
        self.retries.append((envelope.idempotency_key, attempt, delay_ms))
        return delay_ms

    def schedule_deferred(self, envelope: Envelope, delay_ms: int) -> None:
        super().schedule_deferred(envelope, delay_ms)
        self.deferred.append((envelope.idempotency_key, delay_ms))

    def _enqueue(self, envelope: Envelope, delay_ms: int) -> None:
        self.enqueued.append((envelope, delay_ms))

    def pop(self) -> Envelope:
        envelope, _ = self.enqueued.pop(0)
        return envelope


@pytest.fixture(scope="session")
def db_engine() -> Engine:
    """Create a single in-memory SQLite engine for the test session."""
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture()
def db_session(db_engine: Engine) -> Generator[Session, None, None]:
    """Transactional session that rolls back after each test."""
    connection = db_engine.connect()
    transaction = connection.begin()
    session = Session(bind=connection)

    yield session

    session.close()
    if transaction.is_active:
        transaction.rollback()
    connection.close()


@pytest.fixture()
def session_factory(db_session: Session) -> MagicMock:
    """Session factory that always returns the test session.

    Wraps db_session so that ``with session_factory() as session:``
    returns our transactional test session.
    """
    factory = MagicMock(spec=sessionmaker)
    ctx = MagicMock()
    ctx.__enter__ = MagicMock(return_value=db_session)
    ctx.__exit__ = MagicMock(return_value=False)
    factory.return_value = ctx
    return factory


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def dispatch_config() -> DispatchConfig:
    return DispatchConfig(
        sms=SmsSettings(max_attempts=3, base_backoff_ms=100, max_backoff_ms=10_000),
        email=EmailSettings(max_attempts=2, base_backoff_ms=100, max_backoff_ms=1_000),
    )


@pytest.fixture()
def adapters() -> AdapterRegistry:
    registry = AdapterRegistry()
    for channel in Channel:
        registry.register(channel, ScriptedAdapter())
    return registry


@pytest.fixture()
def sms_adapter(adapters: AdapterRegistry) -> ScriptedAdapter:
    return adapters.get(Channel.SMS)


@pytest.fixture()
def state_store() -> InMemoryStateStore:
    return InMemoryStateStore()


@pytest.fixture()
def retry_scheduler(dispatch_config: DispatchConfig) -> RecordingRetryScheduler:
    return RecordingRetryScheduler(dispatch_config)


@pytest.fixture()
def mock_status_publisher() -> MagicMock:
    return MagicMock(spec=KafkaStatusPublisher)


@pytest.fixture()
def templates() -> InMemoryTemplateCatalog:
    catalog = InMemoryTemplateCatalog()
    catalog.add("verification_code", Channel.SMS, "Your code is {{ code }}")
    catalog.add(
        "verification_code",
        Channel.EMAIL,
        "Use {{ code }} within {{ minutes }} minutes.",
        subject_template="Your code: {{ code }}",
    )
    return catalog


@pytest.fixture()
def make_dispatcher(
    dispatch_config: DispatchConfig,
    adapters: AdapterRegistry,
    clock: FakeClock,
    state_store: InMemoryStateStore,
    retry_scheduler: RecordingRetryScheduler,
    templates: InMemoryTemplateCatalog,
    mock_status_publisher: MagicMock,
) -> Callable[..., Dispatcher]:
    """Build a Dispatcher from the fixtures, overriding any collaborator."""

    def _make(**overrides: Any) -> Dispatcher:
        config = overrides.pop("config", dispatch_config)
        parts: dict[str, Any] = {
            "config": config,
            "adapters": adapters,
            "rate_limiter": RateLimiter(config, clock=clock),
            "state_store": state_store,
            "retry_scheduler": retry_scheduler,
            "templates": templates,
            "status_publisher": mock_status_publisher,
        }
        parts.update(overrides)
        return Dispatcher(**parts)

    return _make


@pytest.fixture()
def dispatcher(make_dispatcher: Callable[..., Dispatcher]) -> Dispatcher:
    return make_dispatcher()


@pytest.fixture()
def make_request() -> Callable[..., NotificationRequest]:
    def _make(
        key: str = "order-1001",
        channel: Channel = Channel.SMS,
        recipient: str = "+15551234567",
        body: str = "Your order has shipped",
        **fields: Any,
    ) -> NotificationRequest:
        return NotificationRequest(
            idempotency_key=key,
            channel=channel,
            recipient=recipient,
            body=body,
            **fields,
        )

    return _make


@pytest.fixture()
def make_envelope() -> Callable[..., Envelope]:
    def _make(
        key: str = "order-1001",
        channel: Channel = Channel.SMS,
        recipient: str = "+15551234567",
        sender: str = "+15550000000",
        body: str = "Your order has shipped",
        **fields: Any,
    ) -> Envelope:
        fields.setdefault("timeout_seconds", 2.5)
        return Envelope(
            idempotency_key=key,
            channel=channel,
            recipient=recipient,
            sender=sender,
            body=body,
            **fields,
        )

    return _make
