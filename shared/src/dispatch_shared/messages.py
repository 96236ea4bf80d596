"""Message models exchanged between callers, the dispatcher and adapters."""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from dispatch_shared.enums import Channel


class NotificationRequest(BaseModel):
    """A caller's request to deliver one message on one channel.

    ``idempotency_key`` identifies the logical send: resubmitting the same
    key never produces a second provider call.
    """

    model_config = ConfigDict(frozen=True)

    channel: Channel
    recipient: str = Field(min_length=1, max_length=320)
    body: str = ""
    idempotency_key: str = Field(min_length=1, max_length=128)
    template: str | None = None
    template_context: dict[str, Any] = Field(default_factory=dict)
    # Email header value, so a single line.
    subject: str | None = Field(default=None, max_length=998, pattern=r"^[^\r\n]*$")
    timeout_ms: int | None = Field(default=None, gt=0)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Envelope(BaseModel):
    """Adapter input: a validated request with sender and content resolved."""

    model_config = ConfigDict(frozen=True)

    idempotency_key: str
    channel: Channel
    recipient: str
    sender: str
    body: str
    subject: str | None = None
    timeout_seconds: float = Field(gt=0)
