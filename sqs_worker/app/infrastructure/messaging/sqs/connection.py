"""SQS client management and queue URL resolution (aiobotocore)."""
from __future__ import annotations

from typing import Any

from aiobotocore.session import AioSession
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from sqs_worker.app.core.exceptions import ConfigurationError, TransientTransportError

NON_EXISTENT_QUEUE_CODES = frozenset(
    {"AWS.SimpleQueueService.NonExistentQueue", "QueueDoesNotExist"}
)

# Read timeout must outlast the 20s long poll.
DEFAULT_CLIENT_CONFIG = Config(
    retries={"max_attempts": 3, "mode": "standard"},
    read_timeout=70,
    connect_timeout=5,
)


class SqsConnectionManager:
    """Owns one shared aiobotocore SQS client, opened lazily on first use."""

    def __init__(
        self,
        region_name: str = "us-east-1",
        *,
        endpoint_url: str | None = None,
        aws_access_key_id: str | None = None,
        aws_secret_access_key: str | None = None,
        session: AioSession | None = None,
        config: Config | None = None,
    ) -> None:
        self._region = region_name
        self._session = session or AioSession()
        self._client_kwargs: dict[str, Any] = {"config": config or DEFAULT_CLIENT_CONFIG}
        if endpoint_url:
            self._client_kwargs["endpoint_url"] = endpoint_url
        if aws_access_key_id and aws_secret_access_key:
            self._client_kwargs["aws_access_key_id"] = aws_access_key_id
            self._client_kwargs["aws_secret_access_key"] = aws_secret_access_key
        self._client: Any = None
        self._client_cm: Any = None

    async def get_client(self) -> Any:
        if self._client is None:
            self._client_cm = self._session.create_client(
                "sqs",
                region_name=self._region,
                **self._client_kwargs,
            )
            self._client = await self._client_cm.__aenter__()
        return self._client

    async def get_queue_url(self, queue: str) -> str:
        """Return queue unchanged when it is already a URL, else look the name up."""
        if queue.startswith(("https://", "http://")):
            return queue
        client = await self.get_client()
        try:
            out = await client.get_queue_url(QueueName=queue)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in NON_EXISTENT_QUEUE_CODES:
                raise ConfigurationError(f"queue does not exist: {queue}") from e
            raise TransientTransportError(str(e), code=code) from e
        except BotoCoreError as e:
            raise TransientTransportError(str(e)) from e
        return str(out["QueueUrl"])

    async def close(self) -> None:
        if self._client_cm is not None:
            await self._client_cm.__aexit__(None, None, None)
            self._client_cm = None
            self._client = None

    async def health_check(self) -> bool:
        """Return True if we can list queues (lightweight check)."""
        try:
            client = await self.get_client()
            await client.list_queues(MaxResults=1)
            return True
        except (BotoCoreError, ClientError) as e:
            logger.warning("sqs health check failed: {}", e)
            return False
