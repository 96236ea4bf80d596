"""Celery application setup and worker initialization."""

import logging

from celery import Celery, signals

from dispatch_shared.config import KafkaConfig, PostgresConfig
from dispatch_shared.db.base import create_db_engine, create_session_factory

from dispatch_core.config import CeleryConfig, DispatchConfig
from dispatch_core.log import setup_logging
from dispatch_core.status_publisher import KafkaStatusPublisher
from dispatch_core.wiring import build_celery_dispatcher

logger = logging.getLogger(__name__)

celery_config = CeleryConfig()

app = Celery("dispatch_core", broker=celery_config.broker_url)

app.conf.update(
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_default_queue=celery_config.queue,
)

app.autodiscover_tasks(["dispatch_core"])


@signals.worker_init.connect
def _init_worker(**_kwargs: object) -> None:
    """Build one dispatcher per worker process."""
    dispatch_config = DispatchConfig()
    setup_logging(dispatch_config.log_level)

    engine = create_db_engine(PostgresConfig().dsn, pool_pre_ping=True)
    session_factory = create_session_factory(engine)

    status_publisher = KafkaStatusPublisher(KafkaConfig())

    dispatcher = build_celery_dispatcher(
        dispatch_config,
        app,
        celery_config,
        session_factory,
        status_publisher=status_publisher,
    )

    app.conf.update(
        _dispatcher=dispatcher,
        _status_publisher=status_publisher,
    )
    logger.info("Worker initialized")


@signals.worker_shutdown.connect
def _shutdown_worker(**_kwargs: object) -> None:
    """Clean up resources on worker shutdown."""
    publisher: KafkaStatusPublisher | None = getattr(
        app.conf, "_status_publisher", None
    )
    if publisher is not None:
        publisher.close()
    logger.info("Worker shut down")
