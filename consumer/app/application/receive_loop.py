"""
Receive loop: polls every registered queue on a fixed interval and feeds the inbox.

One cycle polls queues sequentially in registration order, then hands control
to the dispatch engine; the loop sleeps again only after the inbox is drained.
A failed receive on one queue does not stop the remaining queues of the cycle.
"""
from __future__ import annotations

import asyncio
from typing import Any, Callable, Iterable

from loguru import logger

from consumer.app.application.dispatcher import DispatchEngine
from consumer.app.application.error_policy import ErrorPolicy
from consumer.app.constants import MAX_RECEIVE_BATCH, MAX_WAIT_TIME_SECONDS, MIN_RECEIVE_BATCH
from consumer.app.core import SERVICE_NAME
from consumer.app.domain.errors import ReceiveError
from consumer.app.domain.models import DispatchOptions, PendingMessage, QueueRegistration
from consumer.app.ports.events import Events
from consumer.app.ports.queue_provider import ProviderError, QueueProvider


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class ReceiveLoop:
    def __init__(
        self,
        provider: QueueProvider,
        dispatcher: DispatchEngine,
        policy: ErrorPolicy,
        registrations: Callable[[], Iterable[QueueRegistration]],
        *,
        events: Events | None,
        listen_interval_seconds: float,
        max_number_of_messages: int,
        visibility_timeout: int,
        wait_time_seconds: int,
    ) -> None:
        self._provider = provider
        self._dispatcher = dispatcher
        self._policy = policy
        self._registrations = registrations
        self._events = events
        self._listen_interval_seconds = listen_interval_seconds
        self._batch_size = max(MIN_RECEIVE_BATCH, min(int(max_number_of_messages), MAX_RECEIVE_BATCH))
        self._visibility_timeout = int(visibility_timeout)
        self._wait_time_seconds = max(0, min(int(wait_time_seconds), MAX_WAIT_TIME_SECONDS))
        self._stopped = asyncio.Event()
        self.cycles = 0

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    def stop(self) -> None:
        if not self._stopped.is_set():
            _log("receive_loop_stopping")
            self._stopped.set()

    async def listen(self, registration: QueueRegistration) -> int:
        """Receive one batch from a queue into the inbox. Returns the number of messages buffered."""
        messages = await self._provider.receive_messages(
            registration.address,
            max_number_of_messages=self._batch_size,
            visibility_timeout=self._visibility_timeout,
            wait_time_seconds=self._wait_time_seconds,
        )
        options = DispatchOptions(queue_name=registration.logical_name, events=self._events)
        for message in messages:
            self._dispatcher.enqueue(
                PendingMessage(
                    queue_name=registration.logical_name,
                    handler=registration.handler,
                    message=message,
                    options=options,
                )
            )
        return len(messages)

    async def poll_once(self) -> int:
        """Run one cycle: receive from every queue, then drain the inbox.

        In throw mode a ReceiveError naming every failed queue is raised after
        the cycle completes; messages from the healthy queues are still dispatched.
        """
        self.cycles += 1
        received = 0
        failed: list[tuple[str, ProviderError]] = []
        for registration in list(self._registrations()):
            try:
                received += await self.listen(registration)
            except ProviderError as exc:
                logger.bind(
                    service_name=SERVICE_NAME,
                    event="receive_failed",
                    queue_name=registration.logical_name,
                ).warning("{}", exc)
                failed.append((registration.logical_name, exc))

        await self._dispatcher.process_received_messages()

        if failed and self._policy.throw_error:
            names = [name for name, _ in failed]
            raise ReceiveError(
                f"receive failed for {', '.join(names)}: {failed[0][1]}",
                queue_names=names,
            ) from failed[0][1]
        return received

    async def _sleep(self) -> None:
        if self._listen_interval_seconds <= 0:
            await asyncio.sleep(0)
            return
        try:
            await asyncio.wait_for(self._stopped.wait(), timeout=self._listen_interval_seconds)
        except asyncio.TimeoutError:
            pass

    async def listen_all(self) -> None:
        _log("receive_loop_started")
        while not self._stopped.is_set():
            await self._sleep()
            if self._stopped.is_set():
                break
            await self.poll_once()
        _log("receive_loop_stopped", cycles=self.cycles)
