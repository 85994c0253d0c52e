"""Consumer composition root: build and lifecycle-manage concrete dependencies.

Composition may: import concrete classes, call factories, store interface types,
manage high-level lifecycle.
"""
from __future__ import annotations

import importlib
from typing import Any

from loguru import logger

from consumer.app.application.events_service import QueueEvents, QueueLoader
from consumer.app.config.settings import Settings
from consumer.app.core import SERVICE_NAME
from consumer.app.infrastructure.messaging.factory import create_queue_provider
from consumer.app.ports.queue_provider import QueueProvider


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def resolve_queue_loader(path: str) -> QueueLoader | None:
    """Import a "package.module:function" reference. Empty path means no loader."""
    path = path.strip()
    if not path:
        return None
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"queue loader must look like 'package.module:function', got {path!r}")
    loader = getattr(importlib.import_module(module_name), attr)
    if not callable(loader):
        raise ValueError(f"queue loader {path!r} is not callable")
    return loader


class ConsumerDependencies:
    """Holds wired consumer dependencies and their lifecycle."""

    def __init__(self, *, settings: Settings, provider: QueueProvider | None = None) -> None:
        self._settings = settings
        self._provider = provider
        self._events: QueueEvents | None = None

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def events(self) -> QueueEvents:
        if self._events is None:
            raise RuntimeError("events is not initialized")
        return self._events

    async def connect(self, load_queues: QueueLoader | None = None) -> None:
        if self._provider is None:
            self._provider = create_queue_provider(self._settings)
        events = QueueEvents(self._provider, self._settings)
        if load_queues is None:
            load_queues = resolve_queue_loader(self._settings.queue_loader)
        try:
            await events.initialize(load_queues)
        except Exception:
            await self._provider.close()
            self._provider = None
            raise
        self._events = events
        _log("consumer_connected", queues=events.queue_names)

    async def close(self) -> None:
        if self._events is not None:
            try:
                await self._events.close()
            except Exception as exc:
                logger.warning("events close failed: {}", exc)
            self._events = None
        elif self._provider is not None:
            try:
                await self._provider.close()
            except Exception as exc:
                logger.warning("queue provider close failed: {}", exc)
        self._provider = None


def create_consumer_dependencies(settings: Settings | None = None) -> ConsumerDependencies:
    return ConsumerDependencies(settings=settings or Settings())
