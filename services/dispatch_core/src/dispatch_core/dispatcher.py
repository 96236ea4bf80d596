"""Dispatcher: the single entry point for sending notifications."""

import logging

from dispatch_shared.enums import RESUMABLE_STATES, DeliveryState, ErrorClass
from dispatch_shared.log import mask_recipient, message_context
from dispatch_shared.messages import Envelope, NotificationRequest

from dispatch_core.adapters import AdapterRegistry
from dispatch_core.adapters.base import ProviderResult
from dispatch_core.config import DispatchConfig
from dispatch_core.exceptions import (
    InvalidTransition,
    RequestRejected,
    TemplateError,
    UnknownChannel,
)
from dispatch_core.outcomes import Accepted, DispatchOutcome, RateLimited, Rejected
from dispatch_core.rate_limiter import RateLimiter
from dispatch_core.retry import RetryScheduler
from dispatch_core.state_store import DeliveryRecord, DeliveryStateStore
from dispatch_core.status_publisher import StatusPublisher
from dispatch_core.templates import TemplateCatalog
from dispatch_core.validation import normalize_recipient

logger = logging.getLogger(__name__)


class Dispatcher:
    """Routes notification requests to channel adapters.

    For each request: validate, deduplicate on the idempotency key, take a
    rate-limit token, record the attempt, call the adapter, record the result,
    and hand retryable failures to the retry scheduler. This class is the
    only place that decides between retrying and giving up.

    No lock is held while the adapter runs; the state store serialises per
    key, so different keys dispatch in parallel.
    """

    def __init__(
        self,
        config: DispatchConfig,
        adapters: AdapterRegistry,
        rate_limiter: RateLimiter,
        state_store: DeliveryStateStore,
        retry_scheduler: RetryScheduler,
        templates: TemplateCatalog | None = None,
        status_publisher: StatusPublisher | None = None,
    ) -> None:
        self._config = config
        self._adapters = adapters
        self._rate_limiter = rate_limiter
        self._store = state_store
        self._retry_scheduler = retry_scheduler
        self._templates = templates
        self._status_publisher = status_publisher

    def submit(self, request: NotificationRequest) -> DispatchOutcome:
        """Accept a request and make its first delivery attempt.

        Returns ``Rejected`` for malformed input (nothing stored),
        ``Accepted(duplicate=True)`` for a key seen before, ``RateLimited``
        when the channel has no token (the send is deferred), and otherwise
        ``Accepted(duplicate=False)`` with the state after the first attempt.
        """
        log_ctx = message_context(request.idempotency_key, request.channel)

        try:
            envelope = self.build_envelope(request)
        except RequestRejected as exc:
            logger.info("Request rejected", extra={**log_ctx, "reason": str(exc)})
            return Rejected(reason=str(exc))

        settings = self._config.for_channel(request.channel)
        record, is_new = self._store.get_or_create(
            request.idempotency_key, request.channel, settings.max_attempts
        )
        if not is_new:
            logger.info(
                "Duplicate request, not resending",
                extra={**log_ctx, "state": record.state},
            )
            return Accepted(duplicate=True, state=record.state)

        logger.info(
            "Request accepted",
            extra={**log_ctx, "recipient": mask_recipient(envelope.recipient)},
        )
        return self._attempt(envelope)

    def resume(self, envelope: Envelope) -> DispatchOutcome:
        """Retry path: attempt delivery again for a deferred or failed send.

        Does nothing unless the record is ``pending`` (held back by the rate
        limiter) or ``pending_retry``; a terminal or in-flight record is
        returned as a duplicate.
        """
        log_ctx = message_context(envelope.idempotency_key, envelope.channel)
        record = self._store.get(envelope.idempotency_key)
        if record is None:
            logger.warning("Resume for unknown key, dropping", extra=log_ctx)
            return Rejected(reason="Unknown idempotency key")
        if record.state not in RESUMABLE_STATES:
            logger.info(
                "Nothing to resume",
                extra={**log_ctx, "state": record.state},
            )
            return Accepted(duplicate=True, state=record.state)
        return self._attempt(envelope)

    def lookup(self, idempotency_key: str) -> DeliveryRecord | None:
        """Return the current delivery record for a key."""
        return self._store.get(idempotency_key)

    def build_envelope(self, request: NotificationRequest) -> Envelope:
        """Validate a request and resolve recipient, sender and content.

        Raises RequestRejected (or a subclass) for anything that can never
        be delivered.
        """
        if request.channel not in self._adapters:
            raise UnknownChannel(f"No adapter for channel {request.channel!r}")

        recipient = normalize_recipient(request.channel, request.recipient)
        body = request.body
        subject = request.subject

        if request.template is not None:
            if self._templates is None:
                raise TemplateError("Templates are not configured")
            rendered = self._templates.render(
                request.template, request.channel, request.template_context
            )
            body = rendered.body
            subject = subject or rendered.subject

        if not body.strip():
            raise RequestRejected("Message body is empty")
        if subject and any(c in subject for c in "\r\n"):
            raise RequestRejected("Subject must be a single line")

        settings = self._config.for_channel(request.channel)
        timeout_ms = request.timeout_ms or settings.timeout_ms
        return Envelope(
            idempotency_key=request.idempotency_key,
            channel=request.channel,
            recipient=recipient,
            sender=settings.sender,
            body=body,
            subject=subject,
            timeout_seconds=timeout_ms / 1000.0,
        )

    def _attempt(self, envelope: Envelope) -> DispatchOutcome:
        key = envelope.idempotency_key
        log_ctx = message_context(key, envelope.channel)

        if not self._rate_limiter.try_acquire(envelope.channel):
            delay_ms = self._config.rate_limit_retry_ms
            logger.info(
                "Rate limited, deferring",
                extra={**log_ctx, "delay_ms": delay_ms},
            )
            try:
                self._retry_scheduler.schedule_deferred(envelope, delay_ms)
            except Exception:
                logger.exception("Failed to schedule deferred send", extra=log_ctx)
                return self._abandon(
                    key, "Deferred send could not be scheduled", log_ctx
                )
            return RateLimited(retry_after_ms=delay_ms)

        try:
            attempt = self._store.mark_attempt(key)
        except InvalidTransition as exc:
            # Another worker started this attempt first.
            logger.info(
                "Attempt already in progress elsewhere",
                extra={**log_ctx, "state": exc.current},
            )
            return Accepted(duplicate=True, state=DeliveryState(exc.current))

        log_ctx["attempt"] = attempt
        result = self._invoke(envelope, log_ctx)
        record = self._store.mark_result(key, result)
        return self._report(envelope, record, result, log_ctx)

    def _invoke(
        self, envelope: Envelope, log_ctx: dict[str, object]
    ) -> ProviderResult:
        adapter = self._adapters.get(envelope.channel)
        try:
            return adapter.send(envelope)
        except Exception as exc:
            logger.exception("Adapter raised instead of returning a result", extra=log_ctx)
            return ProviderResult.error(
                ErrorClass.UNKNOWN, f"Adapter exception: {type(exc).__name__}: {exc}"
            )

    def _report(
        self,
        envelope: Envelope,
        record: DeliveryRecord,
        result: ProviderResult,
        log_ctx: dict[str, object],
    ) -> DispatchOutcome:
        log_ctx = {**log_ctx, "state": record.state}

        if record.state == DeliveryState.SUCCEEDED:
            logger.info(
                "Delivery succeeded",
                extra={**log_ctx, "provider_message_id": record.provider_message_id},
            )
            self._publish(record, log_ctx)
            return Accepted(duplicate=False, state=record.state)

        log_ctx.update(error_class=result.error_class, reason=result.detail)
        if result.error_class == ErrorClass.UNKNOWN:
            logger.warning("Unclassified provider error", extra=log_ctx)

        if record.state == DeliveryState.PENDING_RETRY:
            try:
                self._retry_scheduler.schedule_retry(envelope, record.attempts)
            except Exception:
                logger.exception("Failed to schedule retry", extra=log_ctx)
                return self._abandon(
                    record.idempotency_key,
                    f"Retry could not be scheduled after: {result.detail}",
                    log_ctx,
                )
            logger.warning("Delivery failed, retry scheduled", extra=log_ctx)
            return Accepted(duplicate=False, state=record.state)

        if result.error_class == ErrorClass.PERMANENT:
            logger.error("Delivery permanently failed", extra=log_ctx)
        else:
            logger.error(
                "Retry budget exhausted",
                extra={**log_ctx, "max_attempts": record.max_attempts},
            )
        self._publish(record, log_ctx)
        return Accepted(duplicate=False, state=record.state)

    def _abandon(
        self, idempotency_key: str, reason: str, log_ctx: dict[str, object]
    ) -> DispatchOutcome:
        """Fail a record whose next attempt has nowhere to run."""
        try:
            record = self._store.mark_abandoned(idempotency_key, reason)
        except InvalidTransition as exc:
            # A stale resume already moved the record on; that caller owns it.
            return Accepted(duplicate=True, state=DeliveryState(exc.current))

        logger.error(
            "Delivery abandoned",
            extra={**log_ctx, "state": record.state, "reason": reason},
        )
        self._publish(record, log_ctx)
        return Accepted(duplicate=False, state=record.state)

    def _publish(self, record: DeliveryRecord, log_ctx: dict[str, object]) -> None:
        if self._status_publisher is None:
            return
        try:
            self._status_publisher.publish_status(record)
        except Exception:
            logger.exception("Failed to publish delivery status", extra=log_ctx)
