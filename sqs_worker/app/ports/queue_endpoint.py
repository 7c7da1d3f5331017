"""Port: queue endpoint capability shared by the worker and the publisher.

Application code depends on this port; infrastructure (aiobotocore SQS, in-memory)
implements it. Every operation raises TransientTransportError on transport failure,
including operations on a stale receipt handle, and EndpointValidationError on
malformed arguments.
"""
from __future__ import annotations

from typing import Mapping, Protocol, Sequence, runtime_checkable

from sqs_worker.app.domain.models import Message, SendResult, VisibilityChange


@runtime_checkable
class QueueEndpoint(Protocol):
    async def resolve(self, queue: str) -> str:
        """Return the destination handle (queue URL) for a queue name or URL."""
        ...

    async def send(
        self,
        destination: str,
        body: str,
        *,
        attributes: Mapping[str, str] | None = None,
        delay_seconds: int = 0,
        group_id: str | None = None,
        deduplication_id: str | None = None,
    ) -> SendResult: ...

    async def receive(
        self,
        destination: str,
        *,
        max_messages: int,
        wait_seconds: int,
        attribute_names: Sequence[str] = (),
    ) -> list[Message]: ...

    async def change_visibility_batch(
        self,
        destination: str,
        entries: Sequence[VisibilityChange],
    ) -> None:
        """Change visibility of several deliveries at once; any failed entry raises."""
        ...

    async def change_visibility(
        self,
        destination: str,
        receipt_handle: str,
        timeout_seconds: int,
    ) -> None: ...

    async def delete(self, destination: str, receipt_handle: str) -> None: ...

    async def close(self) -> None:
        """Release resources (e.g. client session). No-op allowed if nothing to close."""
        ...
