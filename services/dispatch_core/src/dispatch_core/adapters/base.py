"""Abstract channel adapter interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from dispatch_shared.enums import ErrorClass
from dispatch_shared.messages import Envelope


@dataclass(frozen=True, slots=True)
class ProviderResult:
    """Outcome of one vendor call: a message id, or a classified error."""

    message_id: str | None = None
    error_class: ErrorClass | None = None
    detail: str = ""

    @classmethod
    def ok(cls, message_id: str) -> "ProviderResult":
        return cls(message_id=message_id)

    @classmethod
    def error(cls, error_class: ErrorClass, detail: str) -> "ProviderResult":
        return cls(error_class=error_class, detail=detail)

    @property
    def success(self) -> bool:
        return self.error_class is None and self.message_id is not None

    @property
    def retryable(self) -> bool:
        """Transient and unclassified errors are retried within budget."""
        return self.error_class in (ErrorClass.TRANSIENT, ErrorClass.UNKNOWN)


class ChannelAdapter(ABC):
    """Base class for all vendor integrations."""

    @abstractmethod
    def send(self, envelope: Envelope) -> ProviderResult:
        """Make exactly one outbound call to deliver *envelope*.

        Implementations must not raise and must not retry: classify every
        vendor failure into a ``ProviderResult.error(...)`` instead. The call
        must honour ``envelope.timeout_seconds``; running over it is a
        transient error.
        """
