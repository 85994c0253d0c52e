"""Concrete QueueProvider backed by boto3 SQS and SNS clients.

boto3 is blocking; each call runs in the loop's default executor so the
consumer's own suspension points stay cooperative. botocore errors are mapped
to ProviderError.
"""
from __future__ import annotations

import asyncio
import functools
from typing import Any, Callable

from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from consumer.app.constants import MAX_RECEIVE_BATCH, MAX_VISIBILITY_TIMEOUT, MIN_RECEIVE_BATCH
from consumer.app.core import SERVICE_NAME
from consumer.app.domain.models import ReceivedMessage
from consumer.app.ports.queue_provider import ProviderError


class SqsSnsProvider:
    """QueueProvider implementation over boto3 clients (injected by the factory)."""

    def __init__(self, sqs_client: Any, sns_client: Any) -> None:
        self._sqs = sqs_client
        self._sns = sns_client

    async def _call(self, operation: str, fn: Callable[..., Any], **params: Any) -> Any:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, functools.partial(fn, **params))
        except ClientError as exc:
            error = exc.response.get("Error", {})
            raise ProviderError(
                operation,
                error.get("Message") or str(exc),
                code=error.get("Code"),
            ) from exc
        except BotoCoreError as exc:
            raise ProviderError(operation, str(exc)) from exc

    async def create_queue(self, name: str) -> str:
        response = await self._call("create_queue", self._sqs.create_queue, QueueName=name)
        return response["QueueUrl"]

    async def list_queues(self, prefix: str) -> list[str]:
        response = await self._call("list_queues", self._sqs.list_queues, QueueNamePrefix=prefix)
        return list(response.get("QueueUrls") or [])

    async def delete_queue(self, queue_address: str) -> None:
        await self._call("delete_queue", self._sqs.delete_queue, QueueUrl=queue_address)

    async def create_topic(self, name: str) -> str:
        response = await self._call("create_topic", self._sns.create_topic, Name=name)
        return response["TopicArn"]

    async def list_topics(self) -> list[str]:
        topic_arns: list[str] = []
        params: dict[str, Any] = {}
        while True:
            response = await self._call("list_topics", self._sns.list_topics, **params)
            topic_arns.extend(topic["TopicArn"] for topic in response.get("Topics") or [])
            next_token = response.get("NextToken")
            if not next_token:
                return topic_arns
            params = {"NextToken": next_token}

    async def delete_topic(self, topic_address: str) -> None:
        await self._call("delete_topic", self._sns.delete_topic, TopicArn=topic_address)

    async def subscribe(self, topic_address: str, protocol: str, endpoint: str) -> str:
        response = await self._call(
            "subscribe",
            self._sns.subscribe,
            TopicArn=topic_address,
            Protocol=protocol,
            Endpoint=endpoint,
        )
        return response.get("SubscriptionArn", "")

    async def publish(self, topic_address: str, body: str) -> str:
        response = await self._call("publish", self._sns.publish, TopicArn=topic_address, Message=body)
        return response["MessageId"]

    async def receive_messages(
        self,
        queue_address: str,
        *,
        max_number_of_messages: int,
        visibility_timeout: int,
        wait_time_seconds: int,
    ) -> list[ReceivedMessage]:
        response = await self._call(
            "receive_message",
            self._sqs.receive_message,
            QueueUrl=queue_address,
            AttributeNames=["All"],
            MessageAttributeNames=["All"],
            MaxNumberOfMessages=max(MIN_RECEIVE_BATCH, min(int(max_number_of_messages), MAX_RECEIVE_BATCH)),
            VisibilityTimeout=max(0, min(int(visibility_timeout), MAX_VISIBILITY_TIMEOUT)),
            WaitTimeSeconds=int(wait_time_seconds),
        )
        messages: list[ReceivedMessage] = []
        for raw in response.get("Messages") or []:
            try:
                messages.append(ReceivedMessage.from_provider(raw))
            except ValueError as exc:
                # Without a receipt handle the message can be neither acked nor nacked.
                logger.bind(
                    service_name=SERVICE_NAME,
                    event="malformed_message_skipped",
                    queue_url=queue_address,
                    message_id=raw.get("MessageId"),
                ).warning("{}", exc)
        return messages

    async def send_message(
        self,
        queue_address: str,
        body: str,
        *,
        delay_seconds: int | None = None,
        message_attributes: dict[str, str] | None = None,
    ) -> str:
        params: dict[str, Any] = {"QueueUrl": queue_address, "MessageBody": body}
        if delay_seconds is not None:
            params["DelaySeconds"] = int(delay_seconds)
        if message_attributes:
            params["MessageAttributes"] = {
                key: {"DataType": "String", "StringValue": str(value)}
                for key, value in message_attributes.items()
            }
        response = await self._call("send_message", self._sqs.send_message, **params)
        return response["MessageId"]

    async def delete_message(self, queue_address: str, receipt_handle: str) -> None:
        await self._call(
            "delete_message",
            self._sqs.delete_message,
            QueueUrl=queue_address,
            ReceiptHandle=receipt_handle,
        )

    async def change_message_visibility(
        self,
        queue_address: str,
        receipt_handle: str,
        visibility_timeout: int,
    ) -> None:
        await self._call(
            "change_message_visibility",
            self._sqs.change_message_visibility,
            QueueUrl=queue_address,
            ReceiptHandle=receipt_handle,
            VisibilityTimeout=int(visibility_timeout),
        )

    async def close(self) -> None:
        for client in (self._sqs, self._sns):
            close = getattr(client, "close", None)
            if callable(close):
                close()
