"""Unit tests for SqsQueueEndpoint with a mocked aiobotocore client (no real AWS)."""
from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError, ParamValidationError

from sqs_worker.app.core.exceptions import (
    ConfigurationError,
    EndpointValidationError,
    TransientTransportError,
)
from sqs_worker.app.domain.models import VisibilityChange
from sqs_worker.app.infrastructure.messaging.sqs.connection import SqsConnectionManager
from sqs_worker.app.infrastructure.messaging.sqs.sqs_endpoint import SqsQueueEndpoint

QUEUE_URL = "https://sqs.us-east-1.amazonaws.com/123/jobs"


def _client_error(code: str, operation: str = "SendMessage") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": f"{code} happened"}}, operation)


@pytest.fixture
def mock_client() -> MagicMock:
    client = MagicMock()
    client.send_message = AsyncMock(return_value={"MessageId": "id-1", "MD5OfMessageBody": "md5"})
    client.receive_message = AsyncMock(return_value={})
    client.change_message_visibility_batch = AsyncMock(return_value={"Successful": [], "Failed": []})
    client.change_message_visibility = AsyncMock(return_value={})
    client.delete_message = AsyncMock(return_value={})
    return client


@pytest.fixture
def mock_connection(mock_client: MagicMock) -> MagicMock:
    conn = MagicMock()
    conn.get_client = AsyncMock(return_value=mock_client)
    conn.get_queue_url = AsyncMock(return_value=QUEUE_URL)
    conn.close = AsyncMock()
    return conn


@pytest.fixture
def endpoint(mock_connection: MagicMock) -> SqsQueueEndpoint:
    return SqsQueueEndpoint(mock_connection)


@pytest.mark.asyncio
async def test_send_converts_attributes_and_omits_unset_fifo_fields(endpoint, mock_client):
    result = await endpoint.send(QUEUE_URL, "hello", attributes={"tenant": "acme", "priority": 3})

    assert result.message_id == "id-1"
    assert result.sequence_number is None
    kwargs = mock_client.send_message.call_args.kwargs
    assert kwargs["QueueUrl"] == QUEUE_URL
    assert kwargs["MessageBody"] == "hello"
    assert kwargs["DelaySeconds"] == 0
    assert kwargs["MessageAttributes"] == {
        "tenant": {"DataType": "String", "StringValue": "acme"},
        "priority": {"DataType": "Number", "StringValue": "3"},
    }
    assert "MessageGroupId" not in kwargs
    assert "MessageDeduplicationId" not in kwargs


@pytest.mark.asyncio
async def test_send_fifo_fields(endpoint, mock_client):
    mock_client.send_message.return_value = {"MessageId": "id-2", "SequenceNumber": "100"}

    result = await endpoint.send(QUEUE_URL + ".fifo", "hello", group_id="g1", deduplication_id="d1")

    kwargs = mock_client.send_message.call_args.kwargs
    assert kwargs["MessageGroupId"] == "g1"
    assert kwargs["MessageDeduplicationId"] == "d1"
    assert result.sequence_number == "100"


@pytest.mark.asyncio
async def test_receive_maps_messages(endpoint, mock_client):
    mock_client.receive_message.return_value = {
        "Messages": [
            {
                "MessageId": "m1",
                "ReceiptHandle": "r1",
                "Body": "payload",
                "Attributes": {"ApproximateReceiveCount": "2", "SentTimestamp": "1700000000000"},
                "MessageAttributes": {"tenant": {"DataType": "String", "StringValue": "acme"}},
            }
        ]
    }

    messages = await endpoint.receive(
        QUEUE_URL, max_messages=5, wait_seconds=20, attribute_names=("ApproximateReceiveCount",)
    )

    assert len(messages) == 1
    message = messages[0]
    assert (message.id, message.receipt_handle, message.body) == ("m1", "r1", "payload")
    assert message.receive_count == 2
    assert message.message_attributes == {"tenant": "acme"}
    kwargs = mock_client.receive_message.call_args.kwargs
    assert kwargs["MaxNumberOfMessages"] == 5
    assert kwargs["WaitTimeSeconds"] == 20
    assert kwargs["AttributeNames"] == ["ApproximateReceiveCount"]
    assert kwargs["MessageAttributeNames"] == ["All"]


@pytest.mark.asyncio
async def test_receive_without_messages_returns_empty_list(endpoint):
    assert await endpoint.receive(QUEUE_URL, max_messages=1, wait_seconds=0) == []


@pytest.mark.asyncio
async def test_change_visibility_batch_entries(endpoint, mock_client):
    await endpoint.change_visibility_batch(
        QUEUE_URL,
        [VisibilityChange("r1", 3600, "msg0"), VisibilityChange("r2", 3600, "msg1")],
    )

    kwargs = mock_client.change_message_visibility_batch.call_args.kwargs
    assert kwargs["Entries"] == [
        {"Id": "msg0", "ReceiptHandle": "r1", "VisibilityTimeout": 3600},
        {"Id": "msg1", "ReceiptHandle": "r2", "VisibilityTimeout": 3600},
    ]


@pytest.mark.asyncio
async def test_change_visibility_batch_failed_entries_are_transient(endpoint, mock_client):
    mock_client.change_message_visibility_batch.return_value = {
        "Successful": [{"Id": "msg0"}],
        "Failed": [{"Id": "msg1", "Code": "ReceiptHandleIsInvalid", "SenderFault": True, "Message": "stale"}],
    }

    with pytest.raises(TransientTransportError) as excinfo:
        await endpoint.change_visibility_batch(
            QUEUE_URL,
            [VisibilityChange("r1", 60, "msg0"), VisibilityChange("r2", 60, "msg1")],
        )
    assert excinfo.value.code == "ReceiptHandleIsInvalid"
    assert "1 of 2" in str(excinfo.value)


@pytest.mark.asyncio
async def test_empty_batch_makes_no_call(endpoint, mock_client):
    await endpoint.change_visibility_batch(QUEUE_URL, [])
    mock_client.change_message_visibility_batch.assert_not_called()


@pytest.mark.asyncio
async def test_release_and_delete_calls(endpoint, mock_client):
    await endpoint.change_visibility(QUEUE_URL, "r1", 0)
    await endpoint.delete(QUEUE_URL, "r1")

    mock_client.change_message_visibility.assert_called_once_with(
        QueueUrl=QUEUE_URL, ReceiptHandle="r1", VisibilityTimeout=0
    )
    mock_client.delete_message.assert_called_once_with(QueueUrl=QUEUE_URL, ReceiptHandle="r1")


@pytest.mark.asyncio
async def test_stale_receipt_handle_is_transient(endpoint, mock_client):
    mock_client.delete_message.side_effect = _client_error("ReceiptHandleIsInvalid", "DeleteMessage")

    with pytest.raises(TransientTransportError) as excinfo:
        await endpoint.delete(QUEUE_URL, "r1")
    assert excinfo.value.code == "ReceiptHandleIsInvalid"


@pytest.mark.asyncio
async def test_connection_error_is_transient(endpoint, mock_client):
    mock_client.receive_message.side_effect = EndpointConnectionError(endpoint_url="https://sqs.invalid")

    with pytest.raises(TransientTransportError):
        await endpoint.receive(QUEUE_URL, max_messages=1, wait_seconds=20)


@pytest.mark.asyncio
async def test_param_validation_error_is_validation(endpoint, mock_client):
    mock_client.send_message.side_effect = ParamValidationError(report="Invalid type for parameter DelaySeconds")

    with pytest.raises(EndpointValidationError):
        await endpoint.send(QUEUE_URL, "hello")


@pytest.mark.asyncio
async def test_missing_parameter_code_is_validation(endpoint, mock_client):
    mock_client.send_message.side_effect = _client_error("MissingParameter")

    with pytest.raises(EndpointValidationError):
        await endpoint.send(QUEUE_URL, "hello")


@pytest.mark.asyncio
async def test_resolve_and_close_delegate_to_connection(endpoint, mock_connection):
    assert await endpoint.resolve("jobs") == QUEUE_URL
    await endpoint.close()
    mock_connection.get_queue_url.assert_awaited_once_with("jobs")
    mock_connection.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_connection_manager_passes_urls_through_and_maps_missing_queue():
    manager = SqsConnectionManager("us-east-1")
    client = MagicMock()
    client.get_queue_url = AsyncMock(side_effect=_client_error("AWS.SimpleQueueService.NonExistentQueue", "GetQueueUrl"))
    manager._client = client

    assert await manager.get_queue_url(QUEUE_URL) == QUEUE_URL
    with pytest.raises(ConfigurationError):
        await manager.get_queue_url("missing")


@pytest.mark.asyncio
async def test_connection_manager_throttling_is_transient():
    manager = SqsConnectionManager("us-east-1")
    client = MagicMock()
    client.get_queue_url = AsyncMock(side_effect=_client_error("ThrottlingException", "GetQueueUrl"))
    manager._client = client

    with pytest.raises(TransientTransportError):
        await manager.get_queue_url("jobs")
