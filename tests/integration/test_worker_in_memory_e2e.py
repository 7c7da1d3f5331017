"""End-to-end: Publisher and Worker against the in-memory endpoint (no AWS required)."""
from __future__ import annotations

import asyncio

import pytest

from sqs_worker.app.application.dead_letter import DeadLetterPolicy
from sqs_worker.app.application.publisher import Publisher
from sqs_worker.app.application.worker import Worker
from sqs_worker.app.config.options import PublisherOptions, WorkerOptions
from sqs_worker.app.constants import StopReason
from sqs_worker.app.infrastructure.messaging.inmemory.in_memory_endpoint import InMemoryQueueEndpoint

QUEUE = "jobs"
FAST = WorkerOptions(
    max_number_of_messages=5,
    wait_time_seconds=0,
    visibility_timeout=60,
    sleep_if_no_messages=0.01,
    handler_timeout_seconds=2,
)


async def _stop_when(condition, stop: asyncio.Event) -> None:
    while not condition():
        await asyncio.sleep(0.01)
    stop.set()


@pytest.mark.asyncio
async def test_published_messages_are_processed_and_failed_one_is_redelivered():
    endpoint = InMemoryQueueEndpoint()
    publisher = Publisher(endpoint, PublisherOptions(max_retries=2))
    for body in ("a", "b", "c"):
        outcome = await publisher.publish(QUEUE, body, {"source": "test"})
        assert outcome.success

    attempts: dict[str, int] = {}
    done: set[str] = set()

    async def handler(message):
        attempts[message.body] = attempts.get(message.body, 0) + 1
        assert message.message_attributes == {"source": "test"}
        if message.body == "b" and attempts["b"] == 1:
            return False
        done.add(message.body)
        return True

    stop = asyncio.Event()
    worker = Worker(endpoint, FAST)
    summary, _ = await asyncio.wait_for(
        asyncio.gather(
            worker.listen(QUEUE, handler, stop_event=stop),
            _stop_when(lambda: done == {"a", "b", "c"}, stop),
        ),
        timeout=5,
    )

    assert attempts == {"a": 1, "b": 2, "c": 1}
    assert summary.processed == 3
    assert summary.released == 1
    assert summary.total_errors == 0
    assert summary.stop_reason == StopReason.STOP_REQUESTED
    assert endpoint.depth(QUEUE) == 0


@pytest.mark.asyncio
async def test_two_workers_never_hold_the_same_delivery():
    endpoint = InMemoryQueueEndpoint()
    publisher = Publisher(endpoint)
    bodies = [f"job-{i}" for i in range(20)]
    for body in bodies:
        await publisher.publish(QUEUE, body)

    in_flight: set[str] = set()
    processed: list[str] = []
    overlaps: list[str] = []

    async def handler(message):
        if message.id in in_flight:
            overlaps.append(message.id)
        in_flight.add(message.id)
        await asyncio.sleep(0.001)
        in_flight.discard(message.id)
        processed.append(message.body)
        return True

    stop = asyncio.Event()
    first, second = Worker(endpoint, FAST), Worker(endpoint, FAST)
    await asyncio.wait_for(
        asyncio.gather(
            first.listen(QUEUE, handler, stop_event=stop),
            second.listen(QUEUE, handler, stop_event=stop),
            _stop_when(lambda: len(processed) >= len(bodies), stop),
        ),
        timeout=5,
    )

    assert overlaps == []
    assert sorted(processed) == sorted(bodies)
    assert endpoint.depth(QUEUE) == 0


@pytest.mark.asyncio
async def test_always_failing_message_ends_up_in_dead_letter_queue():
    endpoint = InMemoryQueueEndpoint()
    publisher = Publisher(endpoint)
    await publisher.publish(QUEUE, "poison")
    await endpoint.resolve("jobs-dlq")

    calls = []

    def handler(message):
        calls.append(message.receive_count)
        return False

    stop = asyncio.Event()
    worker = Worker(
        endpoint,
        FAST,
        dead_letter=DeadLetterPolicy(max_receive_count=2, destination="jobs-dlq"),
        publisher=publisher,
    )
    summary, _ = await asyncio.wait_for(
        asyncio.gather(
            worker.listen(QUEUE, handler, stop_event=stop),
            _stop_when(lambda: endpoint.depth("jobs-dlq") == 1, stop),
        ),
        timeout=5,
    )

    assert calls == [1, 2]
    assert summary.dead_lettered == 1
    assert endpoint.depth(QUEUE) == 0
    [dead] = await endpoint.receive("jobs-dlq", max_messages=1, wait_seconds=0)
    assert dead.body == "poison"
    assert dead.message_attributes["DeadLetterReceiveCount"] == "3"
