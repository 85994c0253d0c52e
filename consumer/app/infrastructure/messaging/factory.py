"""Queue provider factory: selects implementation from config. Only place that imports concrete providers."""
from __future__ import annotations

from consumer.app.config.settings import Settings
from consumer.app.ports.queue_provider import QueueProvider
from consumer.app.infrastructure.messaging.aws.clients import create_sns_client, create_sqs_client
from consumer.app.infrastructure.messaging.aws.sqs_sns_provider import SqsSnsProvider
from consumer.app.infrastructure.messaging.inmemory.in_memory_provider import InMemoryProvider


def create_queue_provider(settings: Settings) -> QueueProvider:
    backend = settings.events_backend.strip().lower()

    if backend == "sqs":
        return SqsSnsProvider(create_sqs_client(settings), create_sns_client(settings))

    if backend == "inmemory":
        return InMemoryProvider()

    raise ValueError(f"Unsupported events backend: {backend}")
