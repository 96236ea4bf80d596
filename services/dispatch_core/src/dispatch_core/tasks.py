"""Celery task for the retry path."""

import logging
from typing import Any

from pydantic import ValidationError

from dispatch_shared.messages import Envelope

from dispatch_core.celery import app
from dispatch_core.dispatcher import Dispatcher
from dispatch_core.outcomes import Accepted, RateLimited
from dispatch_core.retry import REDELIVER_TASK

logger = logging.getLogger(__name__)


@app.task(name=REDELIVER_TASK)
def redeliver(envelope: dict[str, Any]) -> str:
    """Resume delivery of a deferred or failed send.

    Scheduled by ``CeleryRetryScheduler`` with a countdown. The payload is
    the Envelope built when the request was accepted. Returns the outcome
    as a short string for the Celery result backend.
    """
    dispatcher: Dispatcher = app.conf._dispatcher

    try:
        parsed = Envelope.model_validate(envelope)
    except ValidationError:
        logger.exception("Malformed redeliver payload, dropping")
        return "rejected"

    outcome = dispatcher.resume(parsed)
    if isinstance(outcome, Accepted):
        return str(outcome.state)
    if isinstance(outcome, RateLimited):
        return "rate_limited"
    return "rejected"
