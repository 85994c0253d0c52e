"""Domain models."""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable

if TYPE_CHECKING:
    from consumer.app.ports.events import Events


@dataclass(frozen=True)
class ReceivedMessage:
    """A message as returned by a queue receive call (value object)."""

    message_id: str
    receipt_handle: str
    body: str
    attributes: dict[str, str] = field(default_factory=dict)
    message_attributes: dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def from_provider(raw: dict[str, Any]) -> "ReceivedMessage":
        """Build from an SQS-shaped message dict (MessageId, ReceiptHandle, Body, ...)."""
        receipt_handle = raw.get("ReceiptHandle")
        if not receipt_handle:
            raise ValueError("provider message missing ReceiptHandle")
        return ReceivedMessage(
            message_id=str(raw.get("MessageId", "")),
            receipt_handle=str(receipt_handle),
            body=str(raw.get("Body", "")),
            attributes=dict(raw.get("Attributes") or {}),
            message_attributes=dict(raw.get("MessageAttributes") or {}),
        )

    @property
    def receive_count(self) -> int:
        return int(self.attributes.get("ApproximateReceiveCount", 1))

    def payload(self) -> Any:
        """Decode a JSON body, unwrapping an SNS notification envelope if present.

        Non-JSON bodies are returned as the raw string.
        """
        try:
            decoded = json.loads(self.body)
        except json.JSONDecodeError:
            return self.body
        if isinstance(decoded, dict) and decoded.get("Type") == "Notification" and "Message" in decoded:
            inner = decoded["Message"]
            if isinstance(inner, str):
                try:
                    return json.loads(inner)
                except json.JSONDecodeError:
                    return inner
            return inner
        return decoded


@dataclass(frozen=True)
class DispatchOptions:
    """Context handed to a handler next to the message."""

    queue_name: str
    events: Events | None


MessageHandler = Callable[[ReceivedMessage, DispatchOptions], Awaitable[Any]]


@dataclass
class QueueRegistration:
    """A logical queue bound to its provider address and handler."""

    logical_name: str
    address: str
    handler: MessageHandler


@dataclass(frozen=True)
class PendingMessage:
    """Inbox entry: a received message waiting for a dispatch slot."""

    queue_name: str
    handler: MessageHandler
    message: ReceivedMessage
    options: DispatchOptions
