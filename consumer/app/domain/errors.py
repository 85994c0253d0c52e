"""Consumer error taxonomy."""
from __future__ import annotations


class EventsError(Exception):
    """Base for every error raised by the consumer."""


class ConfigurationError(EventsError):
    """Required option missing; raised before any provider call."""


class ProvisioningError(EventsError):
    """Queue/topic lookup, creation or subscription failed."""


class ReceiveError(EventsError):
    """Polling one or more queues failed during a cycle."""

    def __init__(self, message: str, *, queue_names: list[str] | None = None) -> None:
        super().__init__(message)
        self.queue_names = list(queue_names or [])


class DeliveryControlError(EventsError):
    """ack (delete) or nack (visibility reset) failed."""


class SendError(EventsError):
    """Sending or publishing a message failed."""


class HandlerError(EventsError):
    """A caller-supplied handler raised while processing a message."""
