"""Exceptions raised inside the dispatch core.

Adapters never raise these (or anything else) across their boundary; vendor
failures travel as classified ``ProviderResult`` values instead.
"""


class DispatchError(Exception):
    """Base class for dispatch core errors."""


class RequestRejected(DispatchError):
    """The request is malformed and must not be stored or retried."""


class RecipientValidationError(RequestRejected):
    pass


class TemplateError(RequestRejected):
    pass


class UnknownChannel(RequestRejected):
    pass


class InvalidTransition(DispatchError):
    """A state change the delivery state machine does not allow."""

    def __init__(self, idempotency_key: str, current: str, target: str) -> None:
        super().__init__(
            f"{idempotency_key}: cannot move from {current!r} to {target!r}"
        )
        self.idempotency_key = idempotency_key
        self.current = current
        self.target = target


class RecordNotFound(DispatchError):
    def __init__(self, idempotency_key: str) -> None:
        super().__init__(f"No delivery record for key {idempotency_key!r}")
        self.idempotency_key = idempotency_key
