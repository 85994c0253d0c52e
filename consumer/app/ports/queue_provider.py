"""Queue/topic provider port: the managed services the consumer sits on.

Application code depends on this port; infrastructure (boto3 SQS/SNS, the
in-memory simulation) implements it. Every call is a suspension point.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable

from consumer.app.domain.models import ReceivedMessage


class ProviderError(Exception):
    """Base for provider call failures (network, auth, missing resource, ...)."""

    def __init__(self, operation: str, message: str, *, code: str | None = None) -> None:
        super().__init__(f"{operation}: {message}")
        self.operation = operation
        self.code = code


@runtime_checkable
class QueueProvider(Protocol):
    """Port: queue and topic primitives. Implementations live in infrastructure."""

    async def create_queue(self, name: str) -> str:
        """Create (or return) a queue; returns its address."""
        ...

    async def list_queues(self, prefix: str) -> list[str]: ...

    async def delete_queue(self, queue_address: str) -> None: ...

    async def create_topic(self, name: str) -> str:
        """Create (or return) a topic; returns its address."""
        ...

    async def list_topics(self) -> list[str]: ...

    async def delete_topic(self, topic_address: str) -> None: ...

    async def subscribe(self, topic_address: str, protocol: str, endpoint: str) -> str: ...

    async def publish(self, topic_address: str, body: str) -> str: ...

    async def receive_messages(
        self,
        queue_address: str,
        *,
        max_number_of_messages: int,
        visibility_timeout: int,
        wait_time_seconds: int,
    ) -> list[ReceivedMessage]: ...

    async def send_message(
        self,
        queue_address: str,
        body: str,
        *,
        delay_seconds: int | None = None,
        message_attributes: dict[str, str] | None = None,
    ) -> str: ...

    async def delete_message(self, queue_address: str, receipt_handle: str) -> None: ...

    async def change_message_visibility(
        self,
        queue_address: str,
        receipt_handle: str,
        visibility_timeout: int,
    ) -> None: ...

    async def close(self) -> None:
        """Release resources (e.g. client pools). No-op allowed if nothing to close."""
        ...
