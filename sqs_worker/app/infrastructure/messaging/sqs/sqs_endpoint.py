"""QueueEndpoint implementation over an aiobotocore SQS client.

botocore's client-side ParamValidationError and batch-shape error codes become
EndpointValidationError; every other ClientError/BotoCoreError becomes
TransientTransportError carrying the AWS error code. SQS reports a stale receipt handle
as ReceiptHandleIsInvalid or InvalidParameterValue, so both stay transient.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, Mapping, Sequence

from botocore.exceptions import BotoCoreError, ClientError, ParamValidationError

from sqs_worker.app.constants import RECEIVE_MESSAGE_ATTRIBUTE_NAMES
from sqs_worker.app.core.exceptions import EndpointValidationError, TransientTransportError
from sqs_worker.app.domain.models import Message, SendResult, VisibilityChange
from sqs_worker.app.infrastructure.messaging.sqs.connection import SqsConnectionManager
from sqs_worker.app.infrastructure.messaging.sqs.sqs_message_adapter import (
    attributes_to_sqs,
    message_from_sqs,
    send_result_from_sqs,
)

VALIDATION_ERROR_CODES = frozenset(
    {
        "MissingParameter",
        "InvalidAttributeName",
        "InvalidAttributeValue",
        "InvalidMessageContents",
        "AWS.SimpleQueueService.BatchEntryIdsNotDistinct",
        "AWS.SimpleQueueService.EmptyBatchRequest",
        "AWS.SimpleQueueService.InvalidBatchEntryId",
        "AWS.SimpleQueueService.TooManyEntriesInBatchRequest",
    }
)


@contextmanager
def _translate_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except ParamValidationError as e:
        raise EndpointValidationError(f"{operation}: {e}") from e
    except ClientError as e:
        code = e.response.get("Error", {}).get("Code")
        if code in VALIDATION_ERROR_CODES:
            raise EndpointValidationError(f"{operation}: {e}") from e
        raise TransientTransportError(f"{operation}: {e}", code=code) from e
    except BotoCoreError as e:
        raise TransientTransportError(f"{operation}: {e}") from e


class SqsQueueEndpoint:
    """Implements sqs_worker.app.ports.queue_endpoint.QueueEndpoint for Amazon SQS."""

    def __init__(self, connection: SqsConnectionManager) -> None:
        self._connection = connection

    async def resolve(self, queue: str) -> str:
        return await self._connection.get_queue_url(queue)

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
        send_kwargs: dict[str, Any] = {
            "QueueUrl": destination,
            "MessageBody": body,
            "DelaySeconds": delay_seconds,
        }
        if attributes:
            send_kwargs["MessageAttributes"] = attributes_to_sqs(attributes)
        if group_id is not None:
            send_kwargs["MessageGroupId"] = group_id
        if deduplication_id is not None:
            send_kwargs["MessageDeduplicationId"] = deduplication_id
        with _translate_errors("send"):
            client = await self._connection.get_client()
            out = await client.send_message(**send_kwargs)
        return send_result_from_sqs(out)

    async def receive(
        self,
        destination: str,
        *,
        max_messages: int,
        wait_seconds: int,
        attribute_names: Sequence[str] = (),
    ) -> list[Message]:
        with _translate_errors("receive"):
            client = await self._connection.get_client()
            out = await client.receive_message(
                QueueUrl=destination,
                AttributeNames=list(attribute_names),
                MessageAttributeNames=list(RECEIVE_MESSAGE_ATTRIBUTE_NAMES),
                MaxNumberOfMessages=max_messages,
                WaitTimeSeconds=wait_seconds,
            )
        return [message_from_sqs(raw) for raw in out.get("Messages") or []]

    async def change_visibility_batch(
        self,
        destination: str,
        entries: Sequence[VisibilityChange],
    ) -> None:
        if not entries:
            return
        with _translate_errors("change_visibility_batch"):
            client = await self._connection.get_client()
            out = await client.change_message_visibility_batch(
                QueueUrl=destination,
                Entries=[
                    {
                        "Id": entry.entry_id,
                        "ReceiptHandle": entry.receipt_handle,
                        "VisibilityTimeout": entry.timeout_seconds,
                    }
                    for entry in entries
                ],
            )
        failed = out.get("Failed") or []
        if failed:
            details = ", ".join(f"{f.get('Id')}: {f.get('Code')} {f.get('Message', '')}".strip() for f in failed)
            raise TransientTransportError(
                f"change_visibility_batch: {len(failed)} of {len(entries)} entries failed ({details})",
                code=failed[0].get("Code"),
            )

    async def change_visibility(
        self,
        destination: str,
        receipt_handle: str,
        timeout_seconds: int,
    ) -> None:
        with _translate_errors("change_visibility"):
            client = await self._connection.get_client()
            await client.change_message_visibility(
                QueueUrl=destination,
                ReceiptHandle=receipt_handle,
                VisibilityTimeout=timeout_seconds,
            )

    async def delete(self, destination: str, receipt_handle: str) -> None:
        with _translate_errors("delete"):
            client = await self._connection.get_client()
            await client.delete_message(QueueUrl=destination, ReceiptHandle=receipt_handle)

    async def close(self) -> None:
        await self._connection.close()
