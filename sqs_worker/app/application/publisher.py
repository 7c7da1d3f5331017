"""
Publisher: send one message to a queue, retrying transient transport failures.

Retry boundary:
  After the n-th consecutive failed send, the publisher retries iff
  ``max_retries > 0 and n <= max_retries``. It therefore gives up only once the failure
  count exceeds max_retries, making ``max_retries + 1`` attempts in total
  (PUBLISH_ATTEMPTS_BEYOND_MAX_RETRIES). max_retries=0 means a single attempt.
  The fixed retry_delay is slept before a retry only from the 3rd failure onward.

Validation errors abort immediately; a missing endpoint raises ConfigurationError.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Mapping

from loguru import logger

from sqs_worker.app.config.options import PublisherOptions
from sqs_worker.app.constants import PUBLISH_ATTEMPTS_BEYOND_MAX_RETRIES, RETRY_DELAY_MIN_FAILURES
from sqs_worker.app.core import SERVICE_NAME
from sqs_worker.app.core.exceptions import (
    ConfigurationError,
    EndpointValidationError,
    TransientTransportError,
)
from sqs_worker.app.domain.models import PublishOutcome
from sqs_worker.app.ports.queue_endpoint import QueueEndpoint


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


async def _sleep(seconds: float) -> None:
    await asyncio.sleep(seconds)


@dataclass(frozen=True)
class PublishRetryPolicy:
    max_retries: int = 0
    retry_delay: float = 0

    @property
    def max_attempts(self) -> int:
        if self.max_retries <= 0:
            return 1
        return self.max_retries + PUBLISH_ATTEMPTS_BEYOND_MAX_RETRIES

    def should_retry(self, failures: int) -> bool:
        """failures is the number of failed attempts so far (1-based)."""
        return self.max_retries > 0 and failures <= self.max_retries

    def delay_before_retry(self, failures: int) -> float:
        if self.retry_delay > 0 and failures >= RETRY_DELAY_MIN_FAILURES:
            return float(self.retry_delay)
        return 0.0


class Publisher:
    """Stateless between calls; safe to share across tasks."""

    def __init__(self, endpoint: QueueEndpoint | None, options: PublisherOptions | None = None) -> None:
        if endpoint is None:
            raise ConfigurationError("queue endpoint is not initialized")
        options = options or PublisherOptions()
        self._endpoint = endpoint
        self._policy = PublishRetryPolicy(max_retries=options.max_retries, retry_delay=options.retry_delay)

    @property
    def policy(self) -> PublishRetryPolicy:
        return self._policy

    async def publish(
        self,
        destination: str,
        body: str,
        attributes: Mapping[str, str] | None = None,
        delay_seconds: int = 0,
        group_id: str | None = None,
        deduplication_id: str | None = None,
    ) -> PublishOutcome:
        if self._endpoint is None:
            raise ConfigurationError("queue endpoint is not initialized")
        if not destination:
            _log("publish_rejected", reason="empty_destination")
            return PublishOutcome(success=False, attempts=0, error="destination must not be empty")

        failures = 0
        attempts = 0
        while True:
            attempts += 1
            try:
                result = await self._endpoint.send(
                    destination,
                    body,
                    attributes=dict(attributes or {}),
                    delay_seconds=delay_seconds,
                    group_id=None if group_id is None else str(group_id),
                    deduplication_id=deduplication_id,
                )
            except EndpointValidationError as exc:
                logger.warning("publish rejected by endpoint validation: {}", exc)
                _log("publish_failed", destination=destination, attempts=attempts, reason="validation")
                return PublishOutcome(success=False, attempts=attempts, error=str(exc))
            except TransientTransportError as exc:
                failures += 1
                logger.warning("publish attempt {} to {} failed: {}", attempts, destination, exc)
                if not self._policy.should_retry(failures):
                    _log("publish_gave_up", destination=destination, attempts=attempts, error=str(exc))
                    return PublishOutcome(success=False, attempts=attempts, error=str(exc))
                delay = self._policy.delay_before_retry(failures)
                if delay > 0:
                    await _sleep(delay)
                continue

            _log(
                "publish_success",
                destination=destination,
                message_id=result.message_id,
                attempts=attempts,
            )
            return PublishOutcome(success=True, result=result, attempts=attempts)
