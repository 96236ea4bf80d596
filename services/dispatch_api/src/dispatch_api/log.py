"""Logging setup for dispatch_api (delegates to dispatch_shared)."""

from dispatch_shared.log import JsonFormatter, setup_logging as _setup

__all__ = ["JsonFormatter", "setup_logging"]


def setup_logging(level: str = "INFO") -> None:
    _setup(
        level,
        suppress=["werkzeug", "twilio.http_client", "aiosmtplib", "confluent_kafka"],
    )
