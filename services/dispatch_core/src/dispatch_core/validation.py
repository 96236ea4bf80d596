"""Recipient normalization and validation per channel."""

import re

from dispatch_shared.enums import Channel

from dispatch_core.exceptions import RecipientValidationError

_E164 = re.compile(r"^\+[1-9]\d{7,14}$")
_PHONE_SEPARATORS = re.compile(r"[\s\-().]")
_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_phone(raw: str) -> str:
    """Return an E.164 number, stripping separators and a ``whatsapp:`` prefix."""
    number = raw.strip()
    if number.lower().startswith("whatsapp:"):
        number = number[len("whatsapp:"):]
    number = _PHONE_SEPARATORS.sub("", number)
    if not _E164.match(number):
        raise RecipientValidationError(f"Not an E.164 phone number: {raw!r}")
    return number


def normalize_email(raw: str) -> str:
    """Return the address with its domain lower-cased."""
    address = raw.strip()
    if not _EMAIL.match(address):
        raise RecipientValidationError(f"Not a valid email address: {raw!r}")
    local, _, domain = address.rpartition("@")
    return f"{local}@{domain.lower()}"


def normalize_recipient(channel: str, raw: str) -> str:
    """Validate *raw* for *channel* and return its normalized form.

    Raises RecipientValidationError when the address cannot be delivered to
    on that channel.
    """
    if channel in (Channel.SMS, Channel.WHATSAPP):
        return normalize_phone(raw)
    if channel == Channel.EMAIL:
        return normalize_email(raw)
    raise RecipientValidationError(f"No recipient format for channel {channel!r}")
