"""Domain models."""
from __future__ import annotations

from dataclasses import dataclass, field

from sqs_worker.app.constants import StopReason


@dataclass(frozen=True)
class Message:
    """One delivery of a queued message.

    ``receipt_handle`` identifies this delivery only: it stops working once the message
    is deleted, its visibility window lapses, or it is redelivered under a new handle.
    """

    id: str
    receipt_handle: str
    body: str
    attributes: dict[str, str] = field(default_factory=dict)
    message_attributes: dict[str, str] = field(default_factory=dict)

    @property
    def receive_count(self) -> int:
        try:
            return int(self.attributes.get("ApproximateReceiveCount", 0))
        except (TypeError, ValueError):
            return 0


@dataclass(frozen=True)
class SendResult:
    """Queue service acknowledgement of an accepted message."""

    message_id: str
    sequence_number: str | None = None
    md5_of_body: str | None = None


@dataclass(frozen=True)
class VisibilityChange:
    receipt_handle: str
    timeout_seconds: int
    entry_id: str


@dataclass(frozen=True)
class PublishOutcome:
    """Result of Publisher.publish.

    success=True => result is set.
    success=False => result is None and error describes why the publisher gave up;
    attempts is 0 when nothing was sent (validation failure before the first send).
    """

    success: bool
    result: SendResult | None = None
    attempts: int = 0
    error: str | None = None

    @property
    def message_id(self) -> str | None:
        return self.result.message_id if self.result is not None else None


@dataclass
class ListenSummary:
    """Counters for one Worker.listen run."""

    iterations: int = 0
    received: int = 0
    processed: int = 0
    released: int = 0
    dead_lettered: int = 0
    left_locked: int = 0
    consecutive_errors: int = 0
    total_errors: int = 0
    stop_reason: StopReason | None = None
