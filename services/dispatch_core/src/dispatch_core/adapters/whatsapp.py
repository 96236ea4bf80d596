"""WhatsApp adapter backed by the Twilio Messages API."""

from dispatch_core.adapters.twilio import PERMANENT_ERROR_CODES, TwilioMessagesAdapter

# 63003: invalid WhatsApp destination; 63016: outside the 24h session window
# without an approved template.
_WHATSAPP_PERMANENT_CODES = PERMANENT_ERROR_CODES | {63003, 63016}


class WhatsAppAdapter(TwilioMessagesAdapter):
    """Sends WhatsApp messages via Twilio's ``whatsapp:`` address scheme."""

    permanent_error_codes = _WHATSAPP_PERMANENT_CODES

    def address(self, number: str) -> str:
        return f"whatsapp:{number}"
