"""Adapter: convert between SQS wire dicts and domain models."""
from __future__ import annotations

from typing import Any, Mapping

from sqs_worker.app.domain.models import Message, SendResult


def message_from_sqs(raw: Mapping[str, Any]) -> Message:
    return Message(
        id=str(raw.get("MessageId", "")),
        receipt_handle=str(raw["ReceiptHandle"]),
        body=str(raw.get("Body", "")),
        attributes={str(k): str(v) for k, v in (raw.get("Attributes") or {}).items()},
        message_attributes=attributes_from_sqs(raw.get("MessageAttributes") or {}),
    )


def attributes_from_sqs(raw: Mapping[str, Any]) -> dict[str, str]:
    out: dict[str, str] = {}
    for name, value in raw.items():
        if "StringValue" in value:
            out[name] = str(value["StringValue"])
        elif "BinaryValue" in value:
            binary = value["BinaryValue"]
            out[name] = binary.decode("utf-8", "replace") if isinstance(binary, bytes) else str(binary)
    return out


def attributes_to_sqs(attributes: Mapping[str, Any]) -> dict[str, dict[str, Any]]:
    """Plain values become String attributes; already-typed dicts pass through."""
    out: dict[str, dict[str, Any]] = {}
    for name, value in attributes.items():
        if isinstance(value, Mapping):
            out[name] = dict(value)
        elif isinstance(value, (int, float)) and not isinstance(value, bool):
            out[name] = {"DataType": "Number", "StringValue": str(value)}
        else:
            out[name] = {"DataType": "String", "StringValue": str(value)}
    return out


def send_result_from_sqs(raw: Mapping[str, Any]) -> SendResult:
    return SendResult(
        message_id=str(raw["MessageId"]),
        sequence_number=raw.get("SequenceNumber"),
        md5_of_body=raw.get("MD5OfMessageBody"),
    )
