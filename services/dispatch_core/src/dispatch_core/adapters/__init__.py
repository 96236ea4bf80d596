"""Adapter registry for channel-based dispatch."""

import logging

from dispatch_shared.enums import Channel

from dispatch_core.adapters.base import ChannelAdapter, ProviderResult
from dispatch_core.adapters.email import EmailAdapter
from dispatch_core.adapters.sms import SmsAdapter
from dispatch_core.adapters.stub import LoggingAdapter
from dispatch_core.adapters.whatsapp import WhatsAppAdapter
from dispatch_core.config import SmtpConfig, TwilioConfig

__all__ = [
    "AdapterRegistry",
    "ChannelAdapter",
    "ProviderResult",
    "create_default_registry",
]

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Maps channels to adapter instances."""

    def __init__(self) -> None:
        self._adapters: dict[str, ChannelAdapter] = {}

    def register(self, channel: str, adapter: ChannelAdapter) -> None:
        self._adapters[channel] = adapter

    def get(self, channel: str) -> ChannelAdapter:
        """Return the adapter for a channel.

        Raises KeyError if no adapter is registered for the channel.
        """
        return self._adapters[channel]

    def __contains__(self, channel: object) -> bool:
        return channel in self._adapters


def create_default_registry(
    twilio_config: TwilioConfig, smtp_config: SmtpConfig
) -> AdapterRegistry:
    """Create a registry with vendor adapters where credentials exist.

    Channels without credentials fall back to ``LoggingAdapter``.
    """
    registry = AdapterRegistry()

    if twilio_config.configured:
        registry.register(Channel.SMS, SmsAdapter(twilio_config))
        registry.register(Channel.WHATSAPP, WhatsAppAdapter(twilio_config))
    else:
        logger.warning("Twilio not configured, SMS and WhatsApp use stub adapter")
        registry.register(Channel.SMS, LoggingAdapter())
        registry.register(Channel.WHATSAPP, LoggingAdapter())

    if smtp_config.configured:
        registry.register(Channel.EMAIL, EmailAdapter(smtp_config))
    else:
        logger.warning("SMTP not configured, email uses stub adapter")
        registry.register(Channel.EMAIL, LoggingAdapter())

    return registry
