"""Validated worker and publisher options.

Built once at startup (usually from Settings) and passed to the constructors, so a bad
value fails before the first queue call instead of in the middle of the loop.
"""
from __future__ import annotations

from dataclasses import dataclass

from sqs_worker.app.config.settings import Settings
from sqs_worker.app.constants import (
    DEFAULT_MAX_NUMBER_OF_MESSAGES,
    DEFAULT_SLEEP_IF_NO_MESSAGES,
    DEFAULT_VISIBILITY_TIMEOUT,
    DEFAULT_WAIT_TIME_SECONDS,
    MAX_BATCH_SIZE,
    MAX_VISIBILITY_TIMEOUT,
    MAX_WAIT_TIME_SECONDS,
)
from sqs_worker.app.core.exceptions import ConfigurationError


@dataclass(frozen=True)
class WorkerOptions:
    max_number_of_messages: int = DEFAULT_MAX_NUMBER_OF_MESSAGES
    wait_time_seconds: int = DEFAULT_WAIT_TIME_SECONDS
    visibility_timeout: int = DEFAULT_VISIBILITY_TIMEOUT
    sleep_if_no_messages: float = DEFAULT_SLEEP_IF_NO_MESSAGES
    # None waits for the handler indefinitely.
    handler_timeout_seconds: float | None = None

    def __post_init__(self) -> None:
        if not 1 <= self.max_number_of_messages <= MAX_BATCH_SIZE:
            raise ConfigurationError(f"max_number_of_messages must be between 1 and {MAX_BATCH_SIZE}")
        if not 0 <= self.wait_time_seconds <= MAX_WAIT_TIME_SECONDS:
            raise ConfigurationError(f"wait_time_seconds must be between 0 and {MAX_WAIT_TIME_SECONDS}")
        if not 0 <= self.visibility_timeout <= MAX_VISIBILITY_TIMEOUT:
            raise ConfigurationError(f"visibility_timeout must be between 0 and {MAX_VISIBILITY_TIMEOUT}")
        if self.sleep_if_no_messages < 0:
            raise ConfigurationError("sleep_if_no_messages must be >= 0")
        if self.handler_timeout_seconds is not None and self.handler_timeout_seconds <= 0:
            raise ConfigurationError("handler_timeout_seconds must be > 0 or None")

    @classmethod
    def from_settings(cls, settings: Settings) -> "WorkerOptions":
        return cls(
            max_number_of_messages=settings.max_number_of_messages,
            wait_time_seconds=settings.wait_time_seconds,
            visibility_timeout=settings.visibility_timeout,
            sleep_if_no_messages=settings.sleep_if_no_messages,
            handler_timeout_seconds=settings.handler_timeout_seconds,
        )


@dataclass(frozen=True)
class PublisherOptions:
    # 0 disables retries: a single attempt.
    max_retries: int = 0
    # Seconds; only applied before retries that follow the 3rd failure onward.
    retry_delay: float = 0

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ConfigurationError("max_retries must be >= 0")
        if self.retry_delay < 0:
            raise ConfigurationError("retry_delay must be >= 0")

    @classmethod
    def from_settings(cls, settings: Settings) -> "PublisherOptions":
        return cls(
            max_retries=settings.publish_max_retries,
            retry_delay=settings.publish_retry_delay,
        )
