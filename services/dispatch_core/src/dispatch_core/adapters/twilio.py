"""Shared Twilio Messages client for the SMS and WhatsApp adapters."""

import logging
from collections.abc import Callable

import requests
from twilio.base.exceptions import TwilioException, TwilioRestException
from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client

from dispatch_shared.enums import ErrorClass
from dispatch_shared.messages import Envelope

from dispatch_core.adapters.base import ChannelAdapter, ProviderResult
from dispatch_core.config import TwilioConfig

logger = logging.getLogger(__name__)

# Twilio error codes that mean the destination will never accept the message:
# invalid number, region not enabled, unverified trial number, opted out,
# unreachable carrier, not a mobile number.
PERMANENT_ERROR_CODES = frozenset({21211, 21408, 21608, 21610, 21612, 21614})

ClientFactory = Callable[[float], Client]


class TwilioMessagesAdapter(ChannelAdapter):
    """Creates one Message resource per send through the Twilio SDK.

    The SDK's HTTP client carries a single timeout, so each send gets a
    client built for the envelope's timeout.
    """

    permanent_error_codes: frozenset[int] = PERMANENT_ERROR_CODES

    def __init__(
        self, config: TwilioConfig, client_factory: ClientFactory | None = None
    ) -> None:
        self._config = config
        self._client_factory = client_factory or self._default_client

    def _default_client(self, timeout: float) -> Client:
        return Client(
            self._config.account_sid,
            self._config.auth_token,
            region=self._config.region or None,
            edge=self._config.edge or None,
            http_client=TwilioHttpClient(timeout=timeout),
        )

    def address(self, number: str) -> str:
        """Format a number the way the Messages API expects for this channel."""
        return number

    def send(self, envelope: Envelope) -> ProviderResult:
        client = self._client_factory(envelope.timeout_seconds)
        try:
            message = client.messages.create(
                to=self.address(envelope.recipient),
                from_=self.address(envelope.sender),
                body=envelope.body,
            )
        except TwilioRestException as exc:
            return self._classify(exc)
        except requests.Timeout as exc:
            return ProviderResult.error(ErrorClass.TRANSIENT, f"Timeout: {exc}")
        except requests.ConnectionError as exc:
            return ProviderResult.error(ErrorClass.TRANSIENT, f"Connection: {exc}")
        except (requests.RequestException, TwilioException) as exc:
            return ProviderResult.error(ErrorClass.UNKNOWN, f"Twilio error: {exc}")

        if not message.sid:
            return ProviderResult.error(
                ErrorClass.UNKNOWN, "Accepted response without message sid"
            )
        logger.debug("Twilio accepted message", extra={"sid": message.sid})
        return ProviderResult.ok(message.sid)

    def _classify(self, exc: TwilioRestException) -> ProviderResult:
        status = exc.status
        detail = f"HTTP {status}"
        if exc.code is not None:
            detail += f" code {exc.code}"
        if exc.msg:
            detail += f": {exc.msg}"

        if status == 429 or status >= 500:
            return ProviderResult.error(ErrorClass.TRANSIENT, detail)
        if status in (401, 403) or exc.code in self.permanent_error_codes:
            return ProviderResult.error(ErrorClass.PERMANENT, detail)
        return ProviderResult.error(ErrorClass.UNKNOWN, detail)
