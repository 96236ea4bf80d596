from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from dispatch_shared.enums import Channel


class ChannelSettings(BaseModel):
    """Delivery policy for one channel."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=5, ge=1)
    base_backoff_ms: int = Field(default=1_000, gt=0)
    max_backoff_ms: int = Field(default=60_000, gt=0)
    rate_limit_capacity: int = Field(default=10, ge=1)
    rate_limit_refill_per_sec: float = Field(default=1.0, ge=0)
    sender: str = ""
    timeout_ms: int = Field(default=10_000, gt=0)

    @model_validator(mode="after")
    def _check_backoff_bounds(self) -> "ChannelSettings":
        if self.max_backoff_ms < self.base_backoff_ms:
            raise ValueError("max_backoff_ms must be >= base_backoff_ms")
        return self


class SmsSettings(ChannelSettings):
    rate_limit_capacity: int = Field(default=5, ge=1)
    rate_limit_refill_per_sec: float = Field(default=1.0, ge=0)
    sender: str = "+15550000000"


class EmailSettings(ChannelSettings):
    rate_limit_capacity: int = Field(default=50, ge=1)
    rate_limit_refill_per_sec: float = Field(default=10.0, ge=0)
    sender: str = "notifications@example.com"
    timeout_ms: int = Field(default=30_000, gt=0)


class WhatsAppSettings(ChannelSettings):
    rate_limit_capacity: int = Field(default=5, ge=1)
    rate_limit_refill_per_sec: float = Field(default=1.0, ge=0)
    sender: str = "+15550000001"


class DispatchConfig(BaseSettings):
    """Per-channel delivery policy, read once at process start.

    Nested fields come from the environment with ``__`` as delimiter, e.g.
    ``DISPATCH_SMS__MAX_ATTEMPTS=7``.
    """

    model_config = SettingsConfigDict(
        env_prefix="DISPATCH_", env_nested_delimiter="__", frozen=True
    )

    log_level: str = "INFO"
    rate_limit_retry_ms: int = Field(default=2_000, gt=0)
    sms: SmsSettings = SmsSettings()
    email: EmailSettings = EmailSettings()
    whatsapp: WhatsAppSettings = WhatsAppSettings()

    def for_channel(self, channel: str) -> ChannelSettings:
        """Return the settings for a given channel."""
        settings = {
            Channel.SMS: self.sms,
            Channel.EMAIL: self.email,
            Channel.WHATSAPP: self.whatsapp,
        }.get(channel)
        if settings is None:
            raise ValueError(f"Unknown channel: {channel!r}")
        return settings


class TwilioConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="TWILIO_")

    account_sid: str = ""
    auth_token: str = ""
    # Optional Twilio region and edge location, e.g. "ie1" and "dublin".
    region: str = ""
    edge: str = ""

    @property
    def configured(self) -> bool:
        return bool(self.account_sid and self.auth_token)


class SmtpConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SMTP_")

    host: str = ""
    port: int = 587
    username: str = ""
    password: str = ""
    use_tls: bool = True

    @property
    def configured(self) -> bool:
        return bool(self.host)


class CeleryConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CELERY_")

    broker_url: str = "redis://localhost:6379/0"
    queue: str = "dispatch"
