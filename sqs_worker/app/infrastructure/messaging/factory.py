"""Queue endpoint factory: selects implementation from config. Only place that imports concrete endpoints."""
from __future__ import annotations

from sqs_worker.app.config.settings import Settings
from sqs_worker.app.infrastructure.messaging.inmemory.in_memory_endpoint import InMemoryQueueEndpoint
from sqs_worker.app.infrastructure.messaging.sqs.connection import SqsConnectionManager
from sqs_worker.app.infrastructure.messaging.sqs.sqs_endpoint import SqsQueueEndpoint
from sqs_worker.app.ports.queue_endpoint import QueueEndpoint


def create_queue_endpoint(settings: Settings) -> QueueEndpoint:
    backend = settings.endpoint_backend.strip().lower()

    if backend == "sqs":
        connection = SqsConnectionManager(
            settings.aws_region,
            endpoint_url=settings.aws_endpoint_url or None,
            aws_access_key_id=settings.aws_access_key_id or None,
            aws_secret_access_key=settings.aws_secret_access_key or None,
        )
        return SqsQueueEndpoint(connection)

    if backend == "inmemory":
        return InMemoryQueueEndpoint()

    raise ValueError(f"Unsupported endpoint backend: {backend}")
