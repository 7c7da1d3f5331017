"""In-memory queue endpoint for tests and local mode.

Behaves like SQS where the worker cares:
  - a received delivery stays invisible for the queue's default visibility timeout,
    or whatever a later visibility change sets;
  - each receive issues a fresh receipt handle; a handle works only while its delivery
    is in flight, so operations after delete, release, expiry or redelivery raise
    TransientTransportError;
  - destinations ending in ".fifo" require a group id and get sequence numbers.
Ordering within FIFO groups is not modelled. Nothing is persisted.
"""
from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Mapping, Sequence

from sqs_worker.app.constants import MAX_BATCH_SIZE, MAX_DELAY_SECONDS, MAX_VISIBILITY_TIMEOUT
from sqs_worker.app.core.exceptions import EndpointValidationError, TransientTransportError
from sqs_worker.app.domain.models import Message, SendResult, VisibilityChange

DEFAULT_QUEUE_VISIBILITY_TIMEOUT = 30


@dataclass
class _StoredMessage:
    message_id: str
    body: str
    message_attributes: dict[str, str]
    sent_at: float
    visible_at: float
    receive_count: int = 0
    receipt_handle: str | None = None
    sequence_number: str | None = None


@dataclass
class _Queue:
    messages: list[_StoredMessage] = field(default_factory=list)
    arrived: asyncio.Event = field(default_factory=asyncio.Event)
    next_sequence: int = 1


class InMemoryQueueEndpoint:
    """Implements sqs_worker.app.ports.queue_endpoint.QueueEndpoint in process memory."""

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
        default_visibility_timeout: int = DEFAULT_QUEUE_VISIBILITY_TIMEOUT,
    ) -> None:
        self._clock = clock
        self._default_visibility_timeout = default_visibility_timeout
        self._queues: dict[str, _Queue] = {}

    def _queue(self, destination: str) -> _Queue:
        if not destination:
            raise EndpointValidationError("destination must not be empty")
        queue = self._queues.get(destination)
        if queue is None:
            queue = self._queues[destination] = _Queue()
        return queue

    def _in_flight(self, destination: str, receipt_handle: str) -> _StoredMessage:
        now = self._clock()
        for stored in self._queue(destination).messages:
            if stored.receipt_handle == receipt_handle:
                if stored.visible_at <= now:
                    break
                return stored
        raise TransientTransportError(
            f"receipt handle is invalid or expired: {receipt_handle}",
            code="ReceiptHandleIsInvalid",
        )

    def depth(self, destination: str) -> int:
        """Messages not yet deleted, visible or not."""
        return len(self._queue(destination).messages)

    async def resolve(self, queue: str) -> str:
        self._queue(queue)
        return queue

    async def send(
        self,
        destination: str,
        body: str,
        *,
        attributes: Mapping[str, str] | None = None,
        delay_seconds: int = 0,
        group_id: str | None = None,
        deduplication_id: str | None = None,
    ) -> SendResult:
        queue = self._queue(destination)
        if not body:
            raise EndpointValidationError("message body must not be empty")
        if not 0 <= delay_seconds <= MAX_DELAY_SECONDS:
            raise EndpointValidationError(f"delay_seconds must be between 0 and {MAX_DELAY_SECONDS}")
        sequence_number = None
        if destination.endswith(".fifo"):
            if not group_id:
                raise EndpointValidationError("group_id is required for FIFO destinations")
            sequence_number = str(queue.next_sequence)
            queue.next_sequence += 1
        now = self._clock()
        stored = _StoredMessage(
            message_id=str(uuid.uuid4()),
            body=body,
            message_attributes={str(k): str(v) for k, v in (attributes or {}).items()},
            sent_at=now,
            visible_at=now + delay_seconds,
            sequence_number=sequence_number,
        )
        queue.messages.append(stored)
        queue.arrived.set()
        return SendResult(message_id=stored.message_id, sequence_number=sequence_number)

    async def receive(
        self,
        destination: str,
        *,
        max_messages: int,
        wait_seconds: int,
        attribute_names: Sequence[str] = (),
    ) -> list[Message]:
        queue = self._queue(destination)
        if not 1 <= max_messages <= MAX_BATCH_SIZE:
            raise EndpointValidationError(f"max_messages must be between 1 and {MAX_BATCH_SIZE}")
        batch = self._take_visible(queue, max_messages, attribute_names)
        if batch or wait_seconds <= 0:
            return batch
        # the long-poll deadline runs on the event loop clock so an injected clock cannot stall it
        loop = asyncio.get_running_loop()
        deadline = loop.time() + wait_seconds
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                return []
            pending = [s.visible_at for s in queue.messages if s.visible_at > self._clock()]
            if pending:
                remaining = min(remaining, max(min(pending) - self._clock(), 0))
            queue.arrived.clear()
            try:
                await asyncio.wait_for(queue.arrived.wait(), timeout=remaining)
            except asyncio.TimeoutError:
                pass
            batch = self._take_visible(queue, max_messages, attribute_names)
            if batch:
                return batch

    def _take_visible(self, queue: _Queue, max_messages: int, attribute_names: Sequence[str]) -> list[Message]:
        now = self._clock()
        batch: list[Message] = []
        for stored in queue.messages:
            if len(batch) >= max_messages:
                break
            if stored.visible_at > now:
                continue
            stored.receive_count += 1
            stored.receipt_handle = uuid.uuid4().hex
            stored.visible_at = now + self._default_visibility_timeout
            system_attributes = {
                "SentTimestamp": str(int(stored.sent_at * 1000)),
                "ApproximateReceiveCount": str(stored.receive_count),
            }
            if stored.sequence_number is not None:
                system_attributes["SequenceNumber"] = stored.sequence_number
            wanted = set(attribute_names)
            if "All" not in wanted:
                system_attributes = {k: v for k, v in system_attributes.items() if k in wanted}
            batch.append(
                Message(
                    id=stored.message_id,
                    receipt_handle=stored.receipt_handle,
                    body=stored.body,
                    attributes=system_attributes,
                    message_attributes=dict(stored.message_attributes),
                )
            )
        return batch

    async def change_visibility_batch(
        self,
        destination: str,
        entries: Sequence[VisibilityChange],
    ) -> None:
        if len(entries) > MAX_BATCH_SIZE:
            raise EndpointValidationError(f"at most {MAX_BATCH_SIZE} entries per batch")
        if len({entry.entry_id for entry in entries}) != len(entries):
            raise EndpointValidationError("batch entry ids must be distinct")
        failed: list[str] = []
        for entry in entries:
            try:
                await self.change_visibility(destination, entry.receipt_handle, entry.timeout_seconds)
            except TransientTransportError:
                failed.append(entry.entry_id)
        if failed:
            raise TransientTransportError(
                f"change_visibility_batch: {len(failed)} of {len(entries)} entries failed ({', '.join(failed)})",
                code="ReceiptHandleIsInvalid",
            )

    async def change_visibility(
        self,
        destination: str,
        receipt_handle: str,
        timeout_seconds: int,
    ) -> None:
        if not 0 <= timeout_seconds <= MAX_VISIBILITY_TIMEOUT:
            raise EndpointValidationError(f"timeout_seconds must be between 0 and {MAX_VISIBILITY_TIMEOUT}")
        stored = self._in_flight(destination, receipt_handle)
        stored.visible_at = self._clock() + timeout_seconds
        if timeout_seconds == 0:
            stored.receipt_handle = None
            self._queue(destination).arrived.set()

    async def delete(self, destination: str, receipt_handle: str) -> None:
        stored = self._in_flight(destination, receipt_handle)
        self._queue(destination).messages.remove(stored)

    async def close(self) -> None:
        return
