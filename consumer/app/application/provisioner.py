"""
Resource provisioner: idempotent topic/queue discovery-or-creation and subscription.

Lookups always run before creation. A failed lookup counts as "not found" and
falls through to creation; it is never reported as a match. Queue addresses
are cached per name for the process lifetime and never rewritten once set.
Provisioning failures reach the caller as ProvisioningError in both
propagation modes; there is no automatic retry. ensure_*_with_retry are
recovery helpers a caller may choose to invoke.
"""
from __future__ import annotations

import re
from typing import Any, Awaitable, Callable

from loguru import logger

from consumer.app.application.error_policy import ErrorPolicy
from consumer.app.constants import SUBSCRIPTION_PROTOCOL
from consumer.app.core import SERVICE_NAME
from consumer.app.core.backoff import fixed_backoff
from consumer.app.domain.errors import ProvisioningError
from consumer.app.ports.queue_provider import ProviderError, QueueProvider

_QUEUE_URL_PATTERN = re.compile(
    r"^https?://(?P<service>\w+)\.(?P<region>[\w-]+)\.(?P<domain>[\w.-]+?)(?::\d+)?"
    r"/(?P<account>\w+)/(?P<queue>[\w.-]+)$"
)


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def queue_url_to_arn(queue_url: str) -> str:
    """Rewrite an HTTP(S) queue endpoint into the resource identifier subscriptions expect.

    https://sqs.us-east-1.amazonaws.com/123456789012/orders
    -> arn:aws:sqs:us-east-1:123456789012:orders

    Addresses that are not HTTP(S) endpoints, or do not match that shape, are returned as-is.
    """
    match = _QUEUE_URL_PATTERN.match(queue_url)
    if match is None:
        return queue_url
    return "arn:aws:{service}:{region}:{account}:{queue}".format(**match.groupdict())


def _queue_name_from_url(queue_url: str) -> str:
    return queue_url.rstrip("/").rsplit("/", 1)[-1]


def _topic_name_from_arn(topic_arn: str) -> str:
    return topic_arn.rsplit(":", 1)[-1]


class ResourceProvisioner:
    def __init__(
        self,
        provider: QueueProvider,
        policy: ErrorPolicy,
        *,
        retry_interval_seconds: float = 5.0,
        retry_attempts: int = 3,
    ) -> None:
        if retry_attempts < 1:
            raise ValueError("retry_attempts must be >= 1")
        self._provider = provider
        self._policy = policy
        self._retry_interval_seconds = retry_interval_seconds
        self._retry_attempts = retry_attempts
        self._queue_urls: dict[str, str] = {}

    def cached_queue_url(self, name: str) -> str | None:
        return self._queue_urls.get(name)

    def _remember(self, name: str, queue_url: str) -> str:
        # Another coroutine may have resolved the same name while we were suspended.
        return self._queue_urls.setdefault(name, queue_url)

    def _fail(self, message: str, event: str, **kwargs: Any) -> ProvisioningError:
        error = ProvisioningError(message)
        if not self._policy.throw_error:
            logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).warning("{}", message)
        return error

    async def find_queue_url(self, name: str) -> str | None:
        """Search queues by prefix and return the one whose name matches exactly."""
        queue_urls = await self._provider.list_queues(name)
        for queue_url in queue_urls:
            if _queue_name_from_url(queue_url) == name:
                return queue_url
        return None

    async def find_topic(self, name: str) -> str | None:
        for topic_arn in await self._provider.list_topics():
            if _topic_name_from_arn(topic_arn) == name:
                return topic_arn
        return None

    async def ensure_queue(self, name: str) -> str:
        cached = self._queue_urls.get(name)
        if cached:
            return cached

        try:
            existing = await self.find_queue_url(name)
        except ProviderError as exc:
            logger.warning("queue lookup failed, creating {}: {}", name, exc)
            existing = None
        if existing:
            _log("queue_found", queue_name=name, queue_url=existing)
            return self._remember(name, existing)

        try:
            queue_url = await self._provider.create_queue(name)
        except ProviderError as exc:
            raise self._fail(f"create queue {name!r} failed: {exc}", "queue_create_failed", queue_name=name) from exc
        if not queue_url:
            raise self._fail(f"create queue {name!r} returned no address", "queue_create_failed", queue_name=name)
        _log("queue_created", queue_name=name, queue_url=queue_url)
        return self._remember(name, queue_url)

    async def ensure_topic(self, name: str) -> str:
        try:
            existing = await self.find_topic(name)
        except ProviderError as exc:
            logger.warning("topic lookup failed, creating {}: {}", name, exc)
            existing = None
        if existing:
            _log("topic_found", topic_name=name, topic_arn=existing)
            return existing

        try:
            topic_arn = await self._provider.create_topic(name)
        except ProviderError as exc:
            raise self._fail(f"create topic {name!r} failed: {exc}", "topic_create_failed", topic_name=name) from exc
        if not topic_arn:
            raise self._fail(f"create topic {name!r} returned no address", "topic_create_failed", topic_name=name)
        _log("topic_created", topic_name=name, topic_arn=topic_arn)
        return topic_arn

    async def subscribe(self, queue_url: str, topic_arn: str) -> None:
        endpoint = queue_url_to_arn(queue_url)
        try:
            await self._provider.subscribe(topic_arn, SUBSCRIPTION_PROTOCOL, endpoint)
        except ProviderError as exc:
            raise self._fail(
                f"subscribe {endpoint!r} to {topic_arn!r} failed: {exc}",
                "queue_subscribe_failed",
                endpoint=endpoint,
            ) from exc
        _log("queue_subscribed", endpoint=endpoint, topic_arn=topic_arn)

    async def get_queue_url(self, name: str) -> str:
        """Resolve an existing queue without creating it."""
        cached = self._queue_urls.get(name)
        if cached:
            return cached
        try:
            queue_url = await self.find_queue_url(name)
        except ProviderError as exc:
            raise self._fail(f"queue lookup {name!r} failed: {exc}", "queue_lookup_failed", queue_name=name) from exc
        if not queue_url:
            raise self._fail(f"queue {name!r} not found", "queue_lookup_failed", queue_name=name)
        return self._remember(name, queue_url)

    async def ensure_queue_with_retry(self, name: str) -> str:
        return await self._with_retry(self.ensure_queue, name, "queue_provision_retry", queue_name=name)

    async def ensure_topic_with_retry(self, name: str) -> str:
        return await self._with_retry(self.ensure_topic, name, "topic_provision_retry", topic_name=name)

    async def _with_retry(
        self,
        ensure: Callable[[str], Awaitable[str]],
        name: str,
        event: str,
        **fields: Any,
    ) -> str:
        async for attempt in fixed_backoff(self._retry_interval_seconds, self._retry_attempts):
            try:
                return await ensure(name)
            except ProvisioningError:
                # The last attempt's error is the one the caller sees.
                if attempt >= self._retry_attempts:
                    raise
                _log(event, attempt=attempt, **fields)
        raise ProvisioningError(f"{name!r} was not provisioned after {self._retry_attempts} attempts")
