"""Logging setup for dispatch_core (delegates to dispatch_shared)."""

from dispatch_shared.log import JsonFormatter, setup_logging as _setup

__all__ = ["JsonFormatter", "setup_logging"]


def setup_logging(level: str = "INFO") -> None:
    _setup(level, suppress=["celery", "kombu", "twilio.http_client", "aiosmtplib"])
