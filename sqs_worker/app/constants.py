"""Worker and publisher constants shared across modules."""
from __future__ import annotations

from enum import Enum


class WorkerState(str, Enum):
    IDLE = "IDLE"
    POLLING = "POLLING"
    LOCKING = "LOCKING"
    DISPATCHING = "DISPATCHING"
    STOPPING = "STOPPING"
    STOPPED = "STOPPED"


class StopReason(str, Enum):
    ERROR_THRESHOLD = "ERROR_THRESHOLD"
    STOP_REQUESTED = "STOP_REQUESTED"


# Consecutive failed cycles after which listen() returns.
ERROR_THRESHOLD = 5

DEFAULT_MAX_NUMBER_OF_MESSAGES = 1
DEFAULT_WAIT_TIME_SECONDS = 20
DEFAULT_VISIBILITY_TIMEOUT = 3600
DEFAULT_SLEEP_IF_NO_MESSAGES = 1

# SQS service limits.
MAX_BATCH_SIZE = 10
MAX_WAIT_TIME_SECONDS = 20
MAX_VISIBILITY_TIMEOUT = 43_200
MAX_DELAY_SECONDS = 900

RELEASE_VISIBILITY_TIMEOUT = 0

# A publish gives up only once failures exceed max_retries, so it makes
# max_retries + 1 attempts in total.
PUBLISH_ATTEMPTS_BEYOND_MAX_RETRIES = 1

# The fixed retry delay is applied from the 3rd failed attempt onward.
RETRY_DELAY_MIN_FAILURES = 3

RECEIVE_ATTRIBUTE_NAMES = ("SentTimestamp", "ApproximateReceiveCount")
RECEIVE_MESSAGE_ATTRIBUTE_NAMES = ("All",)
