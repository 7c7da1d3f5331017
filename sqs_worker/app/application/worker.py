"""
Worker: the polling loop that receives, locks, dispatches and settles deliveries.

Lifecycle per iteration:
  IDLE -> POLLING -> (empty: sleep -> IDLE)
                   | (batch: LOCKING -> DISPATCHING -> ack/release each -> IDLE)
  Stop requested at an iteration boundary, or ERROR_THRESHOLD consecutive failed
  cycles: STOPPING -> STOPPED.

Concurrency:
  - Strictly sequential within one Worker. Mutual exclusion across workers comes only
    from the queue's visibility timeout; a released delivery may come straight back here.
  - The handler runs under handler_timeout_seconds. Sync handlers run one at a time on
    a worker-owned thread so the event loop stays free to observe stop(). A thread
    cannot be cancelled: a sync handler still running at its timeout keeps its message
    locked (no release) and the queue visibility timeout governs redelivery.

Error accounting:
  - A cycle with at least one transport failure on receive/lock/ack/release adds one
    to the consecutive error counter. Every failure is reported to
    on_error(error_message, error_count).
  - Endpoint validation errors abort the operation and are reported with the counter
    unchanged.
  - A cycle without failures resets the counter.

A stop() issued before listen() starts is honoured: listen() returns without polling.
The stop flag is cleared when listen() returns.
"""
from __future__ import annotations

import asyncio
import inspect
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Awaitable, Callable, Union

from loguru import logger

from sqs_worker.app.application.dead_letter import DeadLetterPolicy
from sqs_worker.app.application.publisher import Publisher
from sqs_worker.app.config.options import WorkerOptions
from sqs_worker.app.constants import (
    ERROR_THRESHOLD,
    RECEIVE_ATTRIBUTE_NAMES,
    RELEASE_VISIBILITY_TIMEOUT,
    StopReason,
    WorkerState,
)
from sqs_worker.app.core import SERVICE_NAME
from sqs_worker.app.core.exceptions import (
    ConfigurationError,
    EndpointValidationError,
    TransientTransportError,
)
from sqs_worker.app.core.memory import peak_memory_usage
from sqs_worker.app.domain.models import ListenSummary, Message, VisibilityChange
from sqs_worker.app.ports.queue_endpoint import QueueEndpoint

Handler = Callable[[Message], Union[bool, Awaitable[bool]]]
ErrorHandler = Callable[[str, int], Union[None, Awaitable[None]]]


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


async def _sleep(seconds: float) -> None:
    await asyncio.sleep(seconds)


class Worker:
    """Consumes one queue destination per listen() call."""

    def __init__(
        self,
        endpoint: QueueEndpoint | None,
        options: WorkerOptions | None = None,
        *,
        dead_letter: DeadLetterPolicy | None = None,
        publisher: Publisher | None = None,
    ) -> None:
        if endpoint is None:
            raise ConfigurationError("queue endpoint is not initialized")
        self._endpoint = endpoint
        self._options = options or WorkerOptions()
        self._dead_letter = dead_letter
        self._publisher = publisher
        if dead_letter is not None and publisher is None:
            self._publisher = Publisher(endpoint)
        self._state = WorkerState.IDLE
        self._stop_requested = asyncio.Event()
        self._destination = ""
        self._summary = ListenSummary()
        self._on_error: ErrorHandler | None = None
        self._cycle_failed = False
        self._cycle_aborted = False
        self._executor: ThreadPoolExecutor | None = None

    @property
    def state(self) -> WorkerState:
        return self._state

    @property
    def options(self) -> WorkerOptions:
        return self._options

    def stop(self) -> None:
        """Ask the loop to exit at the next iteration boundary."""
        if not self._stop_requested.is_set():
            _log("worker_stop_requested")
            self._stop_requested.set()

    def _set_state(self, state: WorkerState) -> None:
        self._state = state

    async def listen(
        self,
        destination: str,
        handler: Handler,
        on_error: ErrorHandler | None = None,
        *,
        stop_event: asyncio.Event | None = None,
    ) -> ListenSummary:
        if not destination:
            raise ConfigurationError("destination must not be empty")
        if not callable(handler):
            raise ConfigurationError("Message handler is not callable or is missing")
        if on_error is not None and not callable(on_error):
            raise ConfigurationError("on_error is not a callable function")

        self._destination = destination
        self._on_error = on_error
        self._summary = ListenSummary()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="sqs-worker-handler")
        _log("worker_started", destination=destination, options=self._options)

        try:
            await self._loop(handler, stop_event)
        finally:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
            self._stop_requested.clear()

        self._set_state(WorkerState.STOPPING)
        _log(
            "worker_finished",
            destination=destination,
            stop_reason=self._summary.stop_reason,
            iterations=self._summary.iterations,
            processed=self._summary.processed,
            released=self._summary.released,
            left_locked=self._summary.left_locked,
            total_errors=self._summary.total_errors,
        )
        self._set_state(WorkerState.STOPPED)
        return self._summary

    async def _loop(self, handler: Handler, stop_event: asyncio.Event | None) -> None:
        while True:
            if self._stop_requested.is_set() or (stop_event is not None and stop_event.is_set()):
                self._summary.stop_reason = StopReason.STOP_REQUESTED
                break

            self._summary.iterations += 1
            _log(
                "worker_iteration",
                iteration=self._summary.iterations,
                peak_memory=peak_memory_usage(),
            )
            self._cycle_failed = False
            self._cycle_aborted = False
            await self._run_cycle(handler)
            self._set_state(WorkerState.IDLE)

            if not self._cycle_failed:
                if not self._cycle_aborted:
                    self._summary.consecutive_errors = 0
            elif self._summary.consecutive_errors >= ERROR_THRESHOLD:
                _log("worker_error_threshold_reached", error_count=self._summary.consecutive_errors)
                self._summary.stop_reason = StopReason.ERROR_THRESHOLD
                break

    async def _run_cycle(self, handler: Handler) -> None:
        self._set_state(WorkerState.POLLING)
        try:
            messages = await self._endpoint.receive(
                self._destination,
                max_messages=self._options.max_number_of_messages,
                wait_seconds=self._options.wait_time_seconds,
                attribute_names=RECEIVE_ATTRIBUTE_NAMES,
            )
        except (TransientTransportError, EndpointValidationError) as exc:
            await self._record_failure("receive", exc)
            return

        if not messages:
            _log("no_messages", sleep_seconds=self._options.sleep_if_no_messages)
            await _sleep(self._options.sleep_if_no_messages)
            return

        self._summary.received += len(messages)
        _log("messages_received", count=len(messages))

        self._set_state(WorkerState.LOCKING)
        if not await self._lock(messages):
            return

        self._set_state(WorkerState.DISPATCHING)
        for message in messages:
            if self._dead_letter is not None and self._dead_letter.exceeded(message):
                await self._route_dead_letter(self._dead_letter, message)
                continue
            completed = await self._invoke_handler(handler, message)
            if completed is None:
                self._summary.left_locked += 1
                _log("message_left_locked", message_id=message.id)
            elif completed:
                await self._ack(message)
            else:
                await self._release(message)

    async def _lock(self, messages: list[Message]) -> bool:
        entries = [
            VisibilityChange(
                receipt_handle=message.receipt_handle,
                timeout_seconds=self._options.visibility_timeout,
                entry_id=f"msg{index}",
            )
            for index, message in enumerate(messages)
        ]
        try:
            await self._endpoint.change_visibility_batch(self._destination, entries)
        except (TransientTransportError, EndpointValidationError) as exc:
            await self._record_failure("lock", exc)
            return False
        return True

    async def _invoke_handler(self, handler: Handler, message: Message) -> bool | None:
        """True to ack, False to release, None when a sync handler is still running."""
        timeout = self._options.handler_timeout_seconds
        try:
            if inspect.iscoroutinefunction(handler):
                result = await asyncio.wait_for(handler(message), timeout=timeout)
            else:
                running = self._executor.submit(handler, message)
                try:
                    result = await asyncio.wait_for(asyncio.shield(asyncio.wrap_future(running)), timeout=timeout)
                except asyncio.TimeoutError:
                    # never started (queued behind a hung handler): safe to release
                    if running.cancel():
                        raise
                    logger.warning(
                        "sync handler still running after {}s for message {}; leaving it locked",
                        timeout,
                        message.id,
                    )
                    _log("handler_timeout", message_id=message.id, timeout_seconds=timeout, still_running=True)
                    return None
                if inspect.isawaitable(result):
                    result = await asyncio.wait_for(result, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("handler timed out after {}s for message {}", timeout, message.id)
            _log("handler_timeout", message_id=message.id, timeout_seconds=timeout)
            return False
        except Exception as exc:
            logger.exception("handler failed for message {}: {}", message.id, exc)
            return False
        return bool(result)
    async def _ack(self, message: Message) -> None:
        try:
            await self._endpoint.delete(self._destination, message.receipt_handle)
        except (TransientTransportError, EndpointValidationError) as exc:
            await self._record_failure("ack", exc)
            return
        self._summary.processed += 1
        _log("message_acked", message_id=message.id)

    async def _release(self, message: Message) -> None:
        try:
            await self._endpoint.change_visibility(
                self._destination,
                message.receipt_handle,
                RELEASE_VISIBILITY_TIMEOUT,
            )
        except (TransientTransportError, EndpointValidationError) as exc:
            await self._record_failure("release", exc)
            return
        self._summary.released += 1
        _log("message_released", message_id=message.id)

    async def _route_dead_letter(self, policy: DeadLetterPolicy, message: Message) -> None:
        outcome = await policy.route(self._publisher, message)
        if not outcome.success:
            logger.warning("dead-letter routing failed for message {}: {}", message.id, outcome.error)
            await self._release(message)
            return
        _log(
            "message_dead_lettered",
            message_id=message.id,
            receive_count=message.receive_count,
            dead_letter_message_id=outcome.message_id,
        )
        self._summary.dead_lettered += 1
        await self._ack(message)

    async def _record_failure(self, operation: str, exc: Exception) -> None:
        if isinstance(exc, EndpointValidationError):
            self._cycle_aborted = True
            logger.warning("{} rejected by endpoint validation: {}", operation, exc)
            _log("worker_validation_error", operation=operation, error=str(exc))
        else:
            if not self._cycle_failed:
                self._cycle_failed = True
                self._summary.consecutive_errors += 1
            self._summary.total_errors += 1
            logger.warning("{} failed: {}", operation, exc)
            _log(
                "worker_transport_error",
                operation=operation,
                error=str(exc),
                error_count=self._summary.consecutive_errors,
            )
        if self._on_error is None:
            return
        try:
            outcome = self._on_error(str(exc), self._summary.consecutive_errors)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as callback_exc:
            logger.exception("on_error callback failed: {}", callback_exc)
