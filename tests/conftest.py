from __future__ import annotations

import asyncio
from typing import Any, Callable

import pytest

from consumer.app.config.settings import Settings
from consumer.app.domain.models import DispatchOptions, ReceivedMessage
from consumer.app.infrastructure.messaging.inmemory.in_memory_provider import InMemoryProvider


class FakeClock:
    """Manually advanced clock for visibility-timeout assertions."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingHandler:
    """Handler that records every invocation; optionally raises or blocks until released."""

    def __init__(self, *, raise_on: set[str] | None = None, gate: asyncio.Event | None = None) -> None:
        self.calls: list[tuple[str, ReceivedMessage]] = []
        self.started: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._raise_on = raise_on or set()
        self._gate = gate

    async def __call__(self, message: ReceivedMessage, options: DispatchOptions) -> None:
        self.started.append(message.body)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self._gate is not None:
                await self._gate.wait()
            else:
                await asyncio.sleep(0)
            if message.body in self._raise_on:
                raise RuntimeError(f"handler blew up on {message.body}")
            self.calls.append((options.queue_name, message))
        finally:
            self.in_flight -= 1


def make_message(body: str, receipt_handle: str | None = None) -> ReceivedMessage:
    return ReceivedMessage(
        message_id=f"id-{body}",
        receipt_handle=receipt_handle or f"rh-{body}",
        body=body,
    )


@pytest.fixture()
def make_settings() -> Callable[..., Settings]:
    def _make(**overrides: Any) -> Settings:
        values: dict[str, Any] = {
            "events_backend": "inmemory",
            "topic_name": "events",
            "listen_interval_ms": 0,
            "process_interval_ms": 0,
            "max_number_of_messages": 10,
            "visibility_timeout": 30,
            "wait_time_seconds": 0,
            "throw_error": False,
            "retry_interval_ms": 0,
            "retry_attempts": 3,
            "queue_prefix": "",
            "queue_loader": "",
        }
        values.update(overrides)
        return Settings(**values)

    return _make


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def provider(clock: FakeClock) -> InMemoryProvider:
    return InMemoryProvider(clock=clock)
