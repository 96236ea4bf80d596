"""Structured JSON logging setup for the dispatch worker and API."""

import json
import logging
import sys
from collections.abc import Sequence
from datetime import datetime, timezone

# Build the set of standard LogRecord attributes so we can extract
# extra fields added via `extra={...}` in log calls.
_STANDARD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
    | {"message", "asctime", "taskName"}
)


class JsonFormatter(logging.Formatter):
    """Single-line JSON log formatter for structured log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, object] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS:
                log_entry[key] = value

        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(
    level: str = "INFO",
    suppress: Sequence[str] = (),
) -> None:
    """Configure root logger with JSON formatter to stdout.

    Args:
        level: Root log level (e.g. "INFO", "DEBUG").
        suppress: Logger names to set to WARNING (e.g. "httpx", "celery",
                  "confluent_kafka") to reduce noise from third-party libs.
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()
    root.addHandler(handler)

    for name in suppress:
        logging.getLogger(name).setLevel(logging.WARNING)


def message_context(
    idempotency_key: str, channel: str, **fields: object
) -> dict[str, object]:
    """Return the standard ``extra`` payload for log lines about one message."""
    return {"idempotency_key": idempotency_key, "channel": str(channel), **fields}


def mask_recipient(recipient: str) -> str:
    """Mask a phone number or email address for log output.

    Keeps enough to correlate (country prefix / last digits, first letter
    and domain) without writing the full address to the logs.
    """
    if "@" in recipient:
        local, _, domain = recipient.partition("@")
        return f"{local[:1]}***@{domain}"
    if len(recipient) <= 6:
        return "***"
    return f"{recipient[:4]}***{recipient[-4:]}"
