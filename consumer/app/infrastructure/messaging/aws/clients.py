"""boto3 client construction from settings (provider-specific infrastructure)."""
from __future__ import annotations

from typing import Any

import boto3
from botocore.config import Config

from consumer.app.config.settings import Settings

# Long-poll receives may hold the connection for up to 20 s.
_CLIENT_CONFIG = Config(
    retries={"max_attempts": 6, "mode": "standard"},
    read_timeout=70,
    connect_timeout=5,
)


def _client_kwargs(settings: Settings) -> dict[str, Any]:
    kwargs: dict[str, Any] = {"region_name": settings.aws_region, "config": _CLIENT_CONFIG}
    if settings.aws_endpoint_url:
        kwargs["endpoint_url"] = settings.aws_endpoint_url
    if settings.aws_access_key_id and settings.aws_secret_access_key:
        kwargs["aws_access_key_id"] = settings.aws_access_key_id
        kwargs["aws_secret_access_key"] = settings.aws_secret_access_key
    return kwargs


def create_sqs_client(settings: Settings) -> Any:
    return boto3.client("sqs", **_client_kwargs(settings))


def create_sns_client(settings: Settings) -> Any:
    return boto3.client("sns", **_client_kwargs(settings))
