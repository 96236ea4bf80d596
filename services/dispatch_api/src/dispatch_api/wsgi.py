"""WSGI entry point for gunicorn.

Usage:
    gunicorn dispatch_api.wsgi:app --bind 0.0.0.0:8000

Retries are scheduled onto the Celery broker, so run the worker alongside:
    celery -A dispatch_core.celery worker
"""
import atexit

from dispatch_shared.config import KafkaConfig, PostgresConfig
from dispatch_shared.db.base import create_db_engine, create_session_factory

from dispatch_core.celery import app as celery_app, celery_config
from dispatch_core.config import DispatchConfig
from dispatch_core.status_publisher import KafkaStatusPublisher
from dispatch_core.wiring import build_celery_dispatcher

from dispatch_api.app import create_app
from dispatch_api.config import ApiConfig

_dispatch_config = DispatchConfig()
_session_factory = create_session_factory(
    create_db_engine(PostgresConfig().dsn, pool_pre_ping=True)
)
_publisher = KafkaStatusPublisher(KafkaConfig())
atexit.register(_publisher.close)

app = create_app(
    build_celery_dispatcher(
        _dispatch_config,
        celery_app,
        celery_config,
        _session_factory,
        status_publisher=_publisher,
    ),
    log_level=ApiConfig().log_level,
)
