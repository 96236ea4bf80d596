"""Logging adapter (dev stub)."""

import logging
import uuid

from dispatch_shared.log import mask_recipient, message_context
from dispatch_shared.messages import Envelope

from dispatch_core.adapters.base import ChannelAdapter, ProviderResult

logger = logging.getLogger(__name__)


class LoggingAdapter(ChannelAdapter):
    """Stub adapter that logs instead of sending.

    Used for any channel whose vendor credentials are not configured, so a
    dev stack runs end to end without a Twilio account or SMTP relay.
    """

    def send(self, envelope: Envelope) -> ProviderResult:
        body = envelope.body
        preview = body[:50] if body else "(empty)"
        message_id = f"stub-{uuid.uuid4().hex}"
        logger.info(
            "Message sent (stub)",
            extra=message_context(
                envelope.idempotency_key,
                envelope.channel,
                recipient=mask_recipient(envelope.recipient),
                body_preview=preview,
                provider_message_id=message_id,
            ),
        )
        return ProviderResult.ok(message_id)
