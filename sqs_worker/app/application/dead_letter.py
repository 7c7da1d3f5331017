"""Optional dead-letter routing for deliveries that keep failing.

Off unless configured. A message received more than max_receive_count times is
republished to the dead-letter destination instead of being handed to the handler again.
"""
from __future__ import annotations

from dataclasses import dataclass

from sqs_worker.app.application.publisher import Publisher
from sqs_worker.app.core.exceptions import ConfigurationError
from sqs_worker.app.domain.models import Message, PublishOutcome


@dataclass(frozen=True)
class DeadLetterPolicy:
    max_receive_count: int
    destination: str

    def __post_init__(self) -> None:
        if self.max_receive_count < 1:
            raise ConfigurationError("dead-letter max_receive_count must be >= 1")
        if not self.destination:
            raise ConfigurationError("dead-letter destination must not be empty")

    def exceeded(self, message: Message) -> bool:
        return message.receive_count > self.max_receive_count

    async def route(self, publisher: Publisher, message: Message) -> PublishOutcome:
        attributes = dict(message.message_attributes)
        attributes["DeadLetterSourceMessageId"] = message.id
        attributes["DeadLetterReceiveCount"] = str(message.receive_count)
        return await publisher.publish(self.destination, message.body, attributes)
