"""In-memory queue/topic provider for tests and local mode.

Simulates the managed services closely enough to exercise the consumer end to
end: per-queue message stores with visibility timeouts and receipt handles,
topics with queue subscriptions and fan-out on publish. Addresses use the same
shapes as the managed services so subscription endpoint translation applies.
"""
from __future__ import annotations

import json
import time
import uuid
from collections import Counter
from dataclasses import dataclass
from typing import Callable

from consumer.app.domain.models import ReceivedMessage
from consumer.app.ports.queue_provider import ProviderError

ACCOUNT_ID = "000000000000"
REGION = "local"


@dataclass
class _StoredMessage:
    message_id: str
    body: str
    visible_at: float
    sent_at: float
    receipt_handle: str | None = None
    receive_count: int = 0
    message_attributes: dict[str, str] | None = None


class InMemoryProvider:
    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._queues: dict[str, list[_StoredMessage]] = {}
        self._topics: dict[str, set[str]] = {}
        self._injected: dict[str, list[ProviderError]] = {}
        self.calls: Counter[str] = Counter()
        self.closed = False

    @staticmethod
    def queue_url(name: str) -> str:
        return f"https://sqs.{REGION}.memory/{ACCOUNT_ID}/{name}"

    @staticmethod
    def topic_arn(name: str) -> str:
        return f"arn:aws:sns:{REGION}:{ACCOUNT_ID}:{name}"

    def inject_failure(self, operation: str, *, times: int = 1, message: str = "injected failure") -> None:
        """Make the next `times` calls of `operation` raise ProviderError."""
        errors = self._injected.setdefault(operation, [])
        errors.extend(ProviderError(operation, message, code="Injected") for _ in range(times))

    def queued(self, queue_address: str) -> int:
        return len(self._store(queue_address, "queued"))

    def _enter(self, operation: str) -> None:
        self.calls[operation] += 1
        errors = self._injected.get(operation)
        if errors:
            raise errors.pop(0)

    @staticmethod
    def _queue_name(queue_address: str) -> str:
        # Subscription endpoints arrive as arn:aws:sqs:<region>:<account>:<name>.
        if queue_address.startswith("arn:"):
            return queue_address.rsplit(":", 1)[-1]
        return queue_address.rstrip("/").rsplit("/", 1)[-1]

    def _store(self, queue_address: str, operation: str) -> list[_StoredMessage]:
        name = self._queue_name(queue_address)
        store = self._queues.get(name)
        if store is None:
            raise ProviderError(operation, f"queue does not exist: {queue_address}", code="QueueDoesNotExist")
        return store

    def _append(
        self,
        store: list[_StoredMessage],
        body: str,
        delay_seconds: int = 0,
        attributes: dict[str, str] | None = None,
    ) -> str:
        now = self._clock()
        message_id = str(uuid.uuid4())
        store.append(
            _StoredMessage(
                message_id=message_id,
                body=body,
                visible_at=now + max(0, delay_seconds),
                sent_at=now,
                message_attributes=dict(attributes) if attributes else None,
            )
        )
        return message_id

    async def create_queue(self, name: str) -> str:
        self._enter("create_queue")
        self._queues.setdefault(name, [])
        return self.queue_url(name)

    async def list_queues(self, prefix: str) -> list[str]:
        self._enter("list_queues")
        return [self.queue_url(name) for name in sorted(self._queues) if name.startswith(prefix)]

    async def delete_queue(self, queue_address: str) -> None:
        self._enter("delete_queue")
        self._store(queue_address, "delete_queue")
        name = self._queue_name(queue_address)
        del self._queues[name]
        for subscribers in self._topics.values():
            subscribers.discard(name)

    async def create_topic(self, name: str) -> str:
        self._enter("create_topic")
        arn = self.topic_arn(name)
        self._topics.setdefault(arn, set())
        return arn

    async def list_topics(self) -> list[str]:
        self._enter("list_topics")
        return sorted(self._topics)

    async def delete_topic(self, topic_address: str) -> None:
        self._enter("delete_topic")
        self._topics.pop(topic_address, None)

    async def subscribe(self, topic_address: str, protocol: str, endpoint: str) -> str:
        self._enter("subscribe")
        subscribers = self._topics.get(topic_address)
        if subscribers is None:
            raise ProviderError("subscribe", f"topic does not exist: {topic_address}", code="NotFound")
        if protocol != "sqs":
            raise ProviderError("subscribe", f"unsupported protocol: {protocol}", code="InvalidParameter")
        self._store(endpoint, "subscribe")
        subscribers.add(self._queue_name(endpoint))
        return f"{topic_address}:{uuid.uuid5(uuid.NAMESPACE_URL, endpoint)}"

    async def publish(self, topic_address: str, body: str) -> str:
        self._enter("publish")
        subscribers = self._topics.get(topic_address)
        if subscribers is None:
            raise ProviderError("publish", f"topic does not exist: {topic_address}", code="NotFound")
        message_id = str(uuid.uuid4())
        envelope = json.dumps(
            {"Type": "Notification", "MessageId": message_id, "TopicArn": topic_address, "Message": body}
        )
        for name in sorted(subscribers):
            self._append(self._queues[name], envelope)
        return message_id

    async def receive_messages(
        self,
        queue_address: str,
        *,
        max_number_of_messages: int,
        visibility_timeout: int,
        wait_time_seconds: int,
    ) -> list[ReceivedMessage]:
        self._enter("receive_messages")
        store = self._store(queue_address, "receive_messages")
        now = self._clock()
        received: list[ReceivedMessage] = []
        for stored in store:
            if len(received) >= max_number_of_messages:
                break
            if stored.visible_at > now:
                continue
            stored.receipt_handle = uuid.uuid4().hex
            stored.receive_count += 1
            stored.visible_at = now + visibility_timeout
            received.append(
                ReceivedMessage(
                    message_id=stored.message_id,
                    receipt_handle=stored.receipt_handle,
                    body=stored.body,
                    attributes={
                        "ApproximateReceiveCount": str(stored.receive_count),
                        "SentTimestamp": str(int(stored.sent_at * 1000)),
                    },
                    message_attributes=dict(stored.message_attributes or {}),
                )
            )
        return received

    async def send_message(
        self,
        queue_address: str,
        body: str,
        *,
        delay_seconds: int | None = None,
        message_attributes: dict[str, str] | None = None,
    ) -> str:
        self._enter("send_message")
        store = self._store(queue_address, "send_message")
        return self._append(store, body, delay_seconds or 0, message_attributes)

    async def delete_message(self, queue_address: str, receipt_handle: str) -> None:
        self._enter("delete_message")
        store = self._store(queue_address, "delete_message")
        store[:] = [stored for stored in store if stored.receipt_handle != receipt_handle]

    async def change_message_visibility(
        self,
        queue_address: str,
        receipt_handle: str,
        visibility_timeout: int,
    ) -> None:
        self._enter("change_message_visibility")
        store = self._store(queue_address, "change_message_visibility")
        for stored in store:
            if stored.receipt_handle == receipt_handle:
                stored.visible_at = self._clock() + visibility_timeout
                return
        raise ProviderError(
            "change_message_visibility",
            f"receipt handle is invalid: {receipt_handle}",
            code="ReceiptHandleIsInvalid",
        )

    async def close(self) -> None:
        self.closed = True
