"""Delivery state stores."""

from dispatch_core.state_store.base import DeliveryRecord, DeliveryStateStore
from dispatch_core.state_store.memory import InMemoryStateStore
from dispatch_core.state_store.sql import SqlStateStore

__all__ = [
    "DeliveryRecord",
    "DeliveryStateStore",
    "InMemoryStateStore",
    "SqlStateStore",
]
