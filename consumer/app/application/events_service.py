"""
Events facade: provisioning, queue registration, send/publish, ack/nack and the
listen lifecycle over one QueueProvider.

Lifecycle:
  initialize() -> topic provisioned, load_queues hook run
  start()      -> background listen_all task
  stop()/close() -> loop stopped, task awaited, provider closed
"""
from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, Callable, Sequence

from loguru import logger

from consumer.app.application.delivery import DeliveryControl
from consumer.app.application.dispatcher import DispatchEngine
from consumer.app.application.error_policy import ErrorPolicy
from consumer.app.application.provisioner import ResourceProvisioner
from consumer.app.application.receive_loop import ReceiveLoop
from consumer.app.config.settings import Settings
from consumer.app.core import SERVICE_NAME
from consumer.app.domain.errors import ConfigurationError, ProvisioningError, SendError
from consumer.app.domain.models import MessageHandler, QueueRegistration, ReceivedMessage
from consumer.app.ports.queue_provider import ProviderError, QueueProvider

QueueLoader = Callable[["QueueEvents"], Awaitable[Any]]


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def encode_body(payload: Any) -> str:
    if isinstance(payload, (dict, list)):
        return json.dumps(payload)
    return str(payload)


class QueueEvents:
    """Events implementation backed by a topic-subscribed set of queues."""

    def __init__(self, provider: QueueProvider, settings: Settings) -> None:
        self._provider = provider
        self._settings = settings
        self._policy = ErrorPolicy(settings.throw_error)
        self._provisioner = ResourceProvisioner(
            provider,
            self._policy,
            retry_interval_seconds=settings.retry_interval_seconds,
            retry_attempts=settings.retry_attempts,
        )
        self._dispatcher = DispatchEngine(
            settings.max_number_of_messages,
            process_interval_seconds=settings.process_interval_seconds,
        )
        self._registrations: dict[str, QueueRegistration] = {}
        self._receive_loop = ReceiveLoop(
            provider,
            self._dispatcher,
            self._policy,
            lambda: self._registrations.values(),
            events=self,
            listen_interval_seconds=settings.listen_interval_seconds,
            max_number_of_messages=settings.max_number_of_messages,
            visibility_timeout=settings.visibility_timeout,
            wait_time_seconds=settings.wait_time_seconds,
        )
        self._delivery = DeliveryControl(provider, self._provisioner, self._policy)
        self._topic_arn: str | None = None
        self._listen_task: asyncio.Task[None] | None = None

    @property
    def topic_arn(self) -> str:
        if not self._topic_arn:
            raise RuntimeError("events not initialized")
        return self._topic_arn

    @property
    def provisioner(self) -> ResourceProvisioner:
        return self._provisioner

    @property
    def dispatcher(self) -> DispatchEngine:
        return self._dispatcher

    @property
    def receive_loop(self) -> ReceiveLoop:
        return self._receive_loop

    @property
    def queue_names(self) -> list[str]:
        return list(self._registrations)

    def check_options(self) -> None:
        if not self._settings.topic_name.strip():
            raise ConfigurationError("topic name not specified for events")

    def format_queue_name(self, name: str) -> str:
        prefix = self._settings.queue_prefix
        if not prefix or name.startswith(prefix):
            return name
        return f"{prefix}{name}"

    async def initialize(self, load_queues: QueueLoader | None = None) -> None:
        self.check_options()
        topic_arn = await self._provisioner.ensure_topic(self._settings.topic_name.strip())
        if not topic_arn:
            raise ProvisioningError(f"topic {self._settings.topic_name!r} resolved to an empty address")
        self._topic_arn = topic_arn
        _log("events_initialized", topic_arn=topic_arn)
        if load_queues is not None:
            await load_queues(self)

    async def register_queue(self, name: str | Sequence[str], handler: MessageHandler) -> None:
        topic_arn = self.topic_arn
        names = [name] if isinstance(name, str) else list(name)
        for raw_name in names:
            queue_name = self.format_queue_name(raw_name)
            existing = self._registrations.get(queue_name)
            if existing is not None:
                existing.handler = handler
                _log("queue_handler_replaced", queue_name=queue_name)
                continue
            queue_url = await self._provisioner.ensure_queue(queue_name)
            await self._provisioner.subscribe(queue_url, topic_arn)
            self._registrations[queue_name] = QueueRegistration(
                logical_name=queue_name,
                address=queue_url,
                handler=handler,
            )
            _log("queue_registered", queue_name=queue_name, queue_url=queue_url)

    async def send(
        self,
        name: str,
        payload: Any,
        *,
        delay_seconds: int | None = None,
        message_attributes: dict[str, str] | None = None,
    ) -> str | None:
        """Send to a queue by logical name. Returns the provider message id, or None when swallowed."""
        queue_name = self.format_queue_name(name)
        try:
            queue_url = await self._provisioner.get_queue_url(queue_name)
            message_id = await self._provider.send_message(
                queue_url,
                encode_body(payload),
                delay_seconds=delay_seconds,
                message_attributes=message_attributes,
            )
        except (ProvisioningError, ProviderError) as exc:
            self._policy.report(
                SendError(f"send to {queue_name!r} failed: {exc}"),
                "send_failed",
                queue_name=queue_name,
            )
            return None
        logger.bind(
            service_name=SERVICE_NAME, event="message_sent", queue_name=queue_name, message_id=message_id
        ).debug("")
        return message_id

    async def publish(self, payload: Any) -> str | None:
        """Publish to the topic; every subscribed queue receives a copy."""
        try:
            message_id = await self._provider.publish(self.topic_arn, encode_body(payload))
        except ProviderError as exc:
            self._policy.report(SendError(f"publish failed: {exc}"), "publish_failed", topic_arn=self._topic_arn)
            return None
        return message_id

    async def ack(self, name: str, message: ReceivedMessage) -> bool:
        return await self._delivery.ack(self.format_queue_name(name), message)

    async def nack(self, name: str, message: ReceivedMessage) -> bool:
        return await self._delivery.nack(self.format_queue_name(name), message)

    async def listen_all(self) -> None:
        await self._receive_loop.listen_all()

    def start(self) -> asyncio.Task[None]:
        if self._listen_task is None or self._listen_task.done():
            self._listen_task = asyncio.create_task(self.listen_all())
        return self._listen_task

    async def stop(self) -> None:
        self._receive_loop.stop()
        task = self._listen_task
        self._listen_task = None
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as exc:
            logger.bind(service_name=SERVICE_NAME, event="listen_task_failed").warning("{}", exc)

    async def close(self) -> None:
        try:
            await self.stop()
        finally:
            await self._provider.close()
            _log("events_closed")
