"""SMS adapter backed by the Twilio Messages API."""

from dispatch_core.adapters.twilio import TwilioMessagesAdapter


class SmsAdapter(TwilioMessagesAdapter):
    """Sends plain SMS; recipient and sender are E.164 numbers."""
