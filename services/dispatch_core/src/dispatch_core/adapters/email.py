"""Email adapter backed by an SMTP relay."""

import asyncio
import logging
from collections.abc import Callable
from email.message import EmailMessage
from email.policy import default as default_policy
from email.utils import make_msgid

import aiosmtplib

from dispatch_shared.enums import ErrorClass
from dispatch_shared.messages import Envelope

from dispatch_core.adapters.base import ChannelAdapter, ProviderResult
from dispatch_core.config import SmtpConfig

logger = logging.getLogger(__name__)

SmtpFactory = Callable[..., aiosmtplib.SMTP]


class EmailAdapter(ChannelAdapter):
    """Sends one message per SMTP session.

    The generated ``Message-ID`` header is returned as the provider message
    id, since SMTP relays do not hand back an id of their own. The session
    runs on a private event loop, so ``send`` stays synchronous for the
    dispatcher and Celery workers.
    """

    def __init__(
        self, config: SmtpConfig, smtp_factory: SmtpFactory = aiosmtplib.SMTP
    ) -> None:
        self._config = config
        self._smtp_factory = smtp_factory

    def send(self, envelope: Envelope) -> ProviderResult:
        try:
            message = self._build_message(envelope)
        except ValueError as exc:
            return ProviderResult.error(
                ErrorClass.PERMANENT, f"Malformed message: {exc}"
            )
        message_id = str(message["Message-ID"])

        try:
            asyncio.run(self._deliver(message, envelope.timeout_seconds))
        except aiosmtplib.SMTPRecipientsRefused as exc:
            refused = ", ".join(r.recipient for r in exc.recipients)
            return ProviderResult.error(
                ErrorClass.PERMANENT, f"Recipient refused: {refused}"
            )
        except aiosmtplib.SMTPResponseException as exc:
            return self._classify_reply(exc.code, exc.message)
        except (
            aiosmtplib.SMTPConnectError,
            aiosmtplib.SMTPTimeoutError,
            aiosmtplib.SMTPServerDisconnected,
        ) as exc:
            return ProviderResult.error(ErrorClass.TRANSIENT, f"Connection: {exc}")
        except aiosmtplib.SMTPException as exc:
            return ProviderResult.error(ErrorClass.UNKNOWN, f"SMTP error: {exc}")
        except OSError as exc:
            return ProviderResult.error(ErrorClass.TRANSIENT, f"Network: {exc}")

        logger.debug("SMTP relay accepted message", extra={"message_id": message_id})
        return ProviderResult.ok(message_id)

    @staticmethod
    def _build_message(envelope: Envelope) -> EmailMessage:
        message = EmailMessage(policy=default_policy)
        message["From"] = envelope.sender
        message["To"] = envelope.recipient
        message["Subject"] = envelope.subject or ""
        sender_domain = envelope.sender.rpartition("@")[2] or None
        message["Message-ID"] = make_msgid(domain=sender_domain)
        message.set_content(envelope.body, charset="utf-8")
        return message

    async def _deliver(self, message: EmailMessage, timeout: float) -> None:
        smtp = self._smtp_factory(
            hostname=self._config.host,
            port=self._config.port,
            start_tls=self._config.use_tls,
            timeout=timeout,
        )
        async with smtp:
            if self._config.username:
                await smtp.login(self._config.username, self._config.password)
            await smtp.send_message(message)

    @staticmethod
    def _classify_reply(code: int, error: str) -> ProviderResult:
        detail = f"SMTP {code}: {error}"
        if 400 <= code < 500:
            return ProviderResult.error(ErrorClass.TRANSIENT, detail)
        if 500 <= code < 600:
            return ProviderResult.error(ErrorClass.PERMANENT, detail)
        return ProviderResult.error(ErrorClass.UNKNOWN, detail)
