"""Composition root: build and lifecycle-manage concrete dependencies.

Composition may: import concrete classes, call factories, store interface types,
manage high-level lifecycle.
"""
from __future__ import annotations

from typing import Any

from loguru import logger

from sqs_worker.app.application.dead_letter import DeadLetterPolicy
from sqs_worker.app.application.publisher import Publisher
from sqs_worker.app.application.worker import Worker
from sqs_worker.app.config.options import PublisherOptions, WorkerOptions
from sqs_worker.app.config.settings import Settings
from sqs_worker.app.core import SERVICE_NAME
from sqs_worker.app.core.backoff import exponential_backoff
from sqs_worker.app.core.exceptions import TransientTransportError
from sqs_worker.app.infrastructure.messaging.factory import create_queue_endpoint
from sqs_worker.app.ports.queue_endpoint import QueueEndpoint


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class WorkerDependencies:
    """Holds wired worker dependencies and their lifecycle."""

    def __init__(self, *, settings: Settings, endpoint: QueueEndpoint | None = None) -> None:
        self._settings = settings
        self._worker_options = WorkerOptions.from_settings(settings)
        self._publisher_options = PublisherOptions.from_settings(settings)
        self._endpoint = endpoint
        self._publisher: Publisher | None = None
        self._worker: Worker | None = None
        self._destination: str | None = None

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def destination(self) -> str:
        if self._destination is None:
            raise RuntimeError("destination is not resolved")
        return self._destination

    @property
    def publisher(self) -> Publisher:
        if self._publisher is None:
            raise RuntimeError("publisher is not initialized")
        return self._publisher

    @property
    def worker(self) -> Worker:
        if self._worker is None:
            raise RuntimeError("worker is not initialized")
        return self._worker

    async def connect(self) -> None:
        if self._endpoint is None:
            self._endpoint = create_queue_endpoint(self._settings)
        self._destination = await self._resolve_with_backoff(self._settings.queue)

        dead_letter: DeadLetterPolicy | None = None
        if self._settings.dead_letter_queue and self._settings.dead_letter_max_receive_count > 0:
            dead_letter = DeadLetterPolicy(
                max_receive_count=self._settings.dead_letter_max_receive_count,
                destination=await self._resolve_with_backoff(self._settings.dead_letter_queue),
            )

        self._publisher = Publisher(self._endpoint, self._publisher_options)
        self._worker = Worker(
            self._endpoint,
            self._worker_options,
            dead_letter=dead_letter,
            publisher=self._publisher,
        )

    async def _resolve_with_backoff(self, queue: str) -> str:
        _log("queue_resolving", queue=queue)
        async for attempt, delay in exponential_backoff(
            self._settings.initial_backoff_seconds,
            self._settings.max_backoff_seconds,
            self._settings.backoff_multiplier,
            self._settings.max_connection_attempts,
        ):
            _log("queue_resolve_attempt", queue=queue, attempt=attempt, delay=delay)
            try:
                destination = await self._endpoint.resolve(queue)
            except TransientTransportError as e:
                logger.warning("queue resolve failed: {}", e)
                if attempt >= self._settings.max_connection_attempts:
                    _log("queue_resolve_failed", queue=queue, attempt=attempt)
                    raise
                continue
            _log("queue_resolved", queue=queue, destination=destination)
            return destination
        raise RuntimeError(f"queue resolve failed: {queue}")

    async def close(self) -> None:
        if self._endpoint is not None:
            try:
                await self._endpoint.close()
            except Exception as exc:
                logger.warning("queue endpoint close failed: {}", exc)
            self._endpoint = None
        self._publisher = None
        self._worker = None
        self._destination = None


def create_worker_dependencies(settings: Settings | None = None) -> WorkerDependencies:
    return WorkerDependencies(settings=settings or Settings())
