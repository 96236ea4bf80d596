"""Explicit composition of a Dispatcher from configuration."""

from celery import Celery
from sqlalchemy.orm import Session, sessionmaker

from dispatch_core.adapters import AdapterRegistry, create_default_registry
from dispatch_core.config import CeleryConfig, DispatchConfig, SmtpConfig, TwilioConfig
from dispatch_core.dispatcher import Dispatcher
from dispatch_core.rate_limiter import RateLimiter
from dispatch_core.retry import CeleryRetryScheduler, ThreadedRetryScheduler
from dispatch_core.state_store import InMemoryStateStore, SqlStateStore
from dispatch_core.status_publisher import StatusPublisher
from dispatch_core.templates import InMemoryTemplateCatalog, SqlTemplateCatalog


def build_celery_dispatcher(
    config: DispatchConfig,
    celery_app: Celery,
    celery_config: CeleryConfig,
    session_factory: sessionmaker[Session],
    status_publisher: StatusPublisher | None = None,
    adapters: AdapterRegistry | None = None,
) -> Dispatcher:
    """Dispatcher for multi-process deployments.

    State and templates live in PostgreSQL; retries travel through Celery.
    """
    return Dispatcher(
        config=config,
        adapters=adapters or create_default_registry(TwilioConfig(), SmtpConfig()),
        rate_limiter=RateLimiter(config),
        state_store=SqlStateStore(session_factory),
        retry_scheduler=CeleryRetryScheduler(
            celery_app, config, queue=celery_config.queue
        ),
        templates=SqlTemplateCatalog(session_factory),
        status_publisher=status_publisher,
    )


def build_local_dispatcher(
    config: DispatchConfig,
    adapters: AdapterRegistry | None = None,
    templates: InMemoryTemplateCatalog | None = None,
    max_workers: int = 8,
) -> tuple[Dispatcher, ThreadedRetryScheduler]:
    """Single-process dispatcher with in-memory state and a retry thread.

    The caller owns the returned scheduler's lifecycle (``start``/``stop``).
    """
    scheduler = ThreadedRetryScheduler(config, max_workers=max_workers)
    dispatcher = Dispatcher(
        config=config,
        adapters=adapters or create_default_registry(TwilioConfig(), SmtpConfig()),
        rate_limiter=RateLimiter(config),
        state_store=InMemoryStateStore(),
        retry_scheduler=scheduler,
        templates=templates or InMemoryTemplateCatalog(),
    )
    scheduler.bind(dispatcher.resume)
    return dispatcher, scheduler
