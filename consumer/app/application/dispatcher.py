"""
Dispatch engine: drains the inbox under a bounded number of slots.

State:
  IDLE -> DRAINING -> (IDLE | DRAINING)

Each pass resets the slot counter to max_number_of_messages, starts handler
tasks for the oldest inbox entries until the slots or the inbox run out, and
waits for every started task. Leftover messages get another pass before
control returns to the receive loop.

Handler failures are caught per invocation and logged; they never escape into
the pass, sibling invocations or later cycles.
"""
from __future__ import annotations

import asyncio
from collections import deque
from typing import Any

from loguru import logger

from consumer.app.constants import DispatchState
from consumer.app.core import SERVICE_NAME
from consumer.app.domain.errors import HandlerError
from consumer.app.domain.models import PendingMessage


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class DispatchEngine:
    def __init__(
        self,
        max_number_of_messages: int,
        *,
        process_interval_seconds: float = 0.0,
    ) -> None:
        if max_number_of_messages < 1:
            raise ValueError("max_number_of_messages must be >= 1")
        self._max_slots = int(max_number_of_messages)
        self._process_interval_seconds = process_interval_seconds
        self._inbox: deque[PendingMessage] = deque()
        self._slots = 0
        self._state = DispatchState.IDLE
        self.drain_passes = 0
        self.handler_failures = 0

    @property
    def state(self) -> DispatchState:
        return self._state

    @property
    def slots(self) -> int:
        return self._slots

    @property
    def pending(self) -> int:
        return len(self._inbox)

    def enqueue(self, pending: PendingMessage) -> None:
        self._inbox.append(pending)

    async def process_received_messages(self) -> None:
        while self._inbox:
            await self._drain_pass()
            if self._inbox and self._process_interval_seconds > 0:
                await asyncio.sleep(self._process_interval_seconds)

    async def _drain_pass(self) -> None:
        self._state = DispatchState.DRAINING
        self._slots = self._max_slots
        self.drain_passes += 1
        tasks: list[asyncio.Task[None]] = []
        try:
            while self._inbox and self._slots > 0:
                pending = self._inbox.popleft()
                tasks.append(asyncio.create_task(self._invoke(pending)))
                self._slots -= 1
            _log("drain_pass_started", started=len(tasks), remaining=len(self._inbox))
            await asyncio.gather(*tasks)
        finally:
            self._state = DispatchState.IDLE

    async def _invoke(self, pending: PendingMessage) -> None:
        try:
            await pending.handler(pending.message, pending.options)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.handler_failures += 1
            error = HandlerError(f"handler for {pending.queue_name!r} failed: {exc}")
            logger.bind(
                service_name=SERVICE_NAME,
                event="handler_failed",
                queue_name=pending.queue_name,
                message_id=pending.message.message_id,
            ).opt(exception=exc).error("{}", error)
