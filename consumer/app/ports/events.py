"""Port: the capability set exposed to application code. Implementations live in application."""
from __future__ import annotations

from typing import Any, Protocol, Sequence

from consumer.app.domain.models import MessageHandler, ReceivedMessage


class Events(Protocol):
    async def register_queue(self, name: str | Sequence[str], handler: MessageHandler) -> None: ...

    async def send(
        self,
        name: str,
        payload: Any,
        *,
        delay_seconds: int | None = None,
        message_attributes: dict[str, str] | None = None,
    ) -> str | None: ...

    async def ack(self, name: str, message: ReceivedMessage) -> bool: ...

    async def nack(self, name: str, message: ReceivedMessage) -> bool: ...
