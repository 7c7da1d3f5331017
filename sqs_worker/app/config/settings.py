"""Settings for the worker process, read from the environment and `.env`."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from sqs_worker.app.constants import (
    DEFAULT_MAX_NUMBER_OF_MESSAGES,
    DEFAULT_SLEEP_IF_NO_MESSAGES,
    DEFAULT_VISIBILITY_TIMEOUT,
    DEFAULT_WAIT_TIME_SECONDS,
)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    aws_access_key_id: str = Field("", validation_alias="AWS_KEY")
    aws_secret_access_key: str = Field("", validation_alias="AWS_SECRET_KEY")
    aws_region: str = Field("us-east-1", validation_alias="AWS_REGION")
    # Local SQS emulators (localstack, elasticmq); empty means the AWS endpoint.
    aws_endpoint_url: str = Field("", validation_alias="AWS_ENDPOINT_URL")

    # Queue URL, or a queue name resolved to its URL at startup.
    queue: str = Field(..., validation_alias="AWS_SQS_MESSAGES_QUEUE")

    publish_max_retries: int = Field(0, validation_alias="AWS_SQS_PUBLISH_RETRIES")
    publish_retry_delay: int = Field(0, validation_alias="AWS_SQS_PUBLISH_RETRY_DELAY")

    max_number_of_messages: int = Field(
        DEFAULT_MAX_NUMBER_OF_MESSAGES, validation_alias="SQS_MAX_NUMBER_OF_MESSAGES"
    )
    wait_time_seconds: int = Field(DEFAULT_WAIT_TIME_SECONDS, validation_alias="SQS_WAIT_TIME_SECONDS")
    visibility_timeout: int = Field(DEFAULT_VISIBILITY_TIMEOUT, validation_alias="SQS_VISIBILITY_TIMEOUT")
    sleep_if_no_messages: int = Field(
        DEFAULT_SLEEP_IF_NO_MESSAGES, validation_alias="SQS_SLEEP_IF_NO_MESSAGES"
    )
    handler_timeout_seconds: float | None = Field(None, validation_alias="HANDLER_TIMEOUT_SECONDS")

    endpoint_backend: str = Field("sqs", validation_alias="ENDPOINT_BACKEND")
    worker_handler: str = Field("", validation_alias="WORKER_HANDLER")

    dead_letter_queue: str = Field("", validation_alias="DEAD_LETTER_QUEUE")
    dead_letter_max_receive_count: int = Field(0, validation_alias="DEAD_LETTER_MAX_RECEIVE_COUNT")

    initial_backoff_seconds: float = Field(0.5, validation_alias="INITIAL_BACKOFF_SECONDS")
    max_backoff_seconds: float = Field(10.0, validation_alias="MAX_BACKOFF_SECONDS")
    backoff_multiplier: float = Field(2.0, validation_alias="BACKOFF_MULTIPLIER")
    max_connection_attempts: int = Field(5, validation_alias="MAX_CONNECTION_ATTEMPTS")
