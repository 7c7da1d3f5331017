"""Error taxonomy shared by the publisher, the worker and the endpoint adapters."""
from __future__ import annotations


class SqsWorkerError(Exception):
    """Base for all errors raised by this package."""


class ConfigurationError(SqsWorkerError):
    """Fatal setup problem (missing endpoint, non-callable handler, bad options). Never retried."""


class QueueEndpointError(SqsWorkerError):
    """Base for failures reported by a queue endpoint."""


class TransientTransportError(QueueEndpointError):
    """Recoverable transport failure: network, throttling, stale receipt handle, failed batch entry."""

    def __init__(self, message: str, *, code: str | None = None) -> None:
        self.code = code
        super().__init__(message)


class EndpointValidationError(QueueEndpointError):
    """Malformed call arguments. Aborts the current operation without retry."""
