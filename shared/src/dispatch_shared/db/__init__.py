"""Database layer: models, repositories, engine/session utilities."""

from dispatch_shared.db.base import Base, create_db_engine, create_session_factory
from dispatch_shared.db.models import DeliveryRecordRow, MessageTemplate
from dispatch_shared.db.repositories import (
    DeliveryRecordRepository,
    TemplateRepository,
)

__all__ = [
    "Base",
    "create_db_engine",
    "create_session_factory",
    "DeliveryRecordRow",
    "MessageTemplate",
    "DeliveryRecordRepository",
    "TemplateRepository",
]
