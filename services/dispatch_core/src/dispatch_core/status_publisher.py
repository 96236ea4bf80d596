"""Kafka producer for terminal delivery status events."""

import json
import logging
from typing import Protocol

from confluent_kafka import Producer

from dispatch_shared.config import KafkaConfig

from dispatch_core.state_store.base import DeliveryRecord

logger = logging.getLogger(__name__)


class StatusPublisher(Protocol):
    def publish_status(self, record: DeliveryRecord) -> None: ...


class KafkaStatusPublisher:
    """Publishes delivery outcomes to the notification.delivery topic.

    One event per terminal transition (``succeeded`` or ``failed``), keyed by
    idempotency key so all events for a message land on one partition.
    """

    def __init__(self, config: KafkaConfig) -> None:
        self._topic = config.delivery_events_topic
        self._producer = Producer({
            "bootstrap.servers": config.bootstrap_servers,
            "acks": "all",
            "enable.idempotence": True,
            "linger.ms": 5,
            "compression.type": "lz4",
        })

    def publish_status(self, record: DeliveryRecord) -> None:
        """Publish a delivery status event."""
        value = json.dumps(record.to_dict()).encode("utf-8")

        self._producer.produce(
            topic=self._topic,
            key=record.idempotency_key.encode("utf-8"),
            value=value,
            on_delivery=self._on_delivery,
        )
        self._producer.poll(0)

    def flush(self, timeout: float = 10.0) -> int:
        """Flush remaining messages. Returns number of unflushed messages."""
        return self._producer.flush(timeout=timeout)

    def close(self) -> None:
        """Flush remaining messages before shutdown."""
        remaining = self.flush()
        if remaining > 0:
            logger.warning(
                "Producer closed with unflushed messages",
                extra={"remaining": remaining},
            )

    @staticmethod
    def _on_delivery(err: object, msg: object) -> None:
        if err is not None:
            logger.error("Kafka delivery failed: %s", err)
