"""Delivery control: ack deletes a message, nack makes it visible again right away."""
from __future__ import annotations

from typing import Any

from loguru import logger

from consumer.app.application.error_policy import ErrorPolicy
from consumer.app.application.provisioner import ResourceProvisioner
from consumer.app.core import SERVICE_NAME
from consumer.app.domain.errors import DeliveryControlError, ProvisioningError
from consumer.app.domain.models import ReceivedMessage
from consumer.app.ports.queue_provider import ProviderError, QueueProvider


def _debug(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).debug("")


class DeliveryControl:
    """
    Settles individual messages. Redelivery cadence is left to the queue's
    visibility timeout; there is no backoff here.

    Both operations return True on success. On failure they report a
    DeliveryControlError through the error policy, so they raise in throw mode
    and return False otherwise.
    """

    def __init__(
        self,
        provider: QueueProvider,
        provisioner: ResourceProvisioner,
        policy: ErrorPolicy,
    ) -> None:
        self._provider = provider
        self._provisioner = provisioner
        self._policy = policy

    async def _queue_url(self, queue_name: str) -> str | None:
        try:
            return await self._provisioner.get_queue_url(queue_name)
        except ProvisioningError as exc:
            self._policy.report(
                DeliveryControlError(f"no address for queue {queue_name!r}: {exc}"),
                "delivery_queue_unknown",
                queue_name=queue_name,
            )
            return None

    async def ack(self, queue_name: str, message: ReceivedMessage) -> bool:
        queue_url = await self._queue_url(queue_name)
        if queue_url is None:
            return False
        try:
            await self._provider.delete_message(queue_url, message.receipt_handle)
        except ProviderError as exc:
            self._policy.report(
                DeliveryControlError(f"ack {message.message_id} on {queue_name!r} failed: {exc}"),
                "ack_failed",
                queue_name=queue_name,
                message_id=message.message_id,
            )
            return False
        _debug("message_acked", queue_name=queue_name, message_id=message.message_id)
        return True

    async def nack(self, queue_name: str, message: ReceivedMessage) -> bool:
        queue_url = await self._queue_url(queue_name)
        if queue_url is None:
            return False
        try:
            await self._provider.change_message_visibility(queue_url, message.receipt_handle, 0)
        except ProviderError as exc:
            self._policy.report(
                DeliveryControlError(f"nack {message.message_id} on {queue_name!r} failed: {exc}"),
                "nack_failed",
                queue_name=queue_name,
                message_id=message.message_id,
            )
            return False
        _debug("message_nacked", queue_name=queue_name, message_id=message.message_id)
        return True
