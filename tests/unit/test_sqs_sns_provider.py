"""Unit tests for SqsSnsProvider against fake boto3 clients."""
from __future__ import annotations

from typing import Any

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from consumer.app.application.dispatcher import DispatchEngine
from consumer.app.application.error_policy import ErrorPolicy
from consumer.app.application.receive_loop import ReceiveLoop
from consumer.app.domain.models import QueueRegistration
from consumer.app.infrastructure.messaging.aws.sqs_sns_provider import SqsSnsProvider
from consumer.app.ports.queue_provider import ProviderError
from tests.conftest import RecordingHandler


class _FakeClient:
    """Records calls; responses and errors are scripted per operation."""

    def __init__(self, **responses: Any) -> None:
        self._responses = responses
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.closed = False

    def __getattr__(self, operation: str):
        if operation.startswith("_"):
            raise AttributeError(operation)

        def _call(**params: Any) -> Any:
            self.calls.append((operation, params))
            response = self._responses.get(operation, {})
            if isinstance(response, list):
                response = response.pop(0)
            if isinstance(response, Exception):
                raise response
            return response

        return _call

    def close(self) -> None:
        self.closed = True


def _client_error(code: str, message: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


@pytest.mark.asyncio
async def test_client_error_maps_to_provider_error_with_code():
    sqs = _FakeClient(create_queue=_client_error("AccessDenied", "nope", "CreateQueue"))
    provider = SqsSnsProvider(sqs, _FakeClient())

    with pytest.raises(ProviderError) as excinfo:
        await provider.create_queue("orders")

    assert excinfo.value.code == "AccessDenied"
    assert excinfo.value.operation == "create_queue"
    assert "nope" in str(excinfo.value)


@pytest.mark.asyncio
async def test_botocore_error_maps_to_provider_error():
    sqs = _FakeClient(list_queues=EndpointConnectionError(endpoint_url="http://localhost:4566"))
    provider = SqsSnsProvider(sqs, _FakeClient())

    with pytest.raises(ProviderError) as excinfo:
        await provider.list_queues("orders")
    assert excinfo.value.code is None


@pytest.mark.asyncio
async def test_list_queues_handles_missing_key():
    provider = SqsSnsProvider(_FakeClient(list_queues={}), _FakeClient())

    assert await provider.list_queues("orders") == []


@pytest.mark.asyncio
async def test_list_topics_follows_pagination():
    sns = _FakeClient(
        list_topics=[
            {"Topics": [{"TopicArn": "arn:aws:sns:r:1:a"}], "NextToken": "t1"},
            {"Topics": [{"TopicArn": "arn:aws:sns:r:1:b"}]},
        ]
    )
    provider = SqsSnsProvider(_FakeClient(), sns)

    assert await provider.list_topics() == ["arn:aws:sns:r:1:a", "arn:aws:sns:r:1:b"]
    assert sns.calls == [("list_topics", {}), ("list_topics", {"NextToken": "t1"})]


@pytest.mark.asyncio
async def test_receive_builds_messages_and_clamps_parameters():
    sqs = _FakeClient(
        receive_message={
            "Messages": [
                {"MessageId": "m1", "ReceiptHandle": "rh1", "Body": "b1"},
                {"MessageId": "m2", "ReceiptHandle": "rh2", "Body": "b2"},
            ]
        }
    )
    provider = SqsSnsProvider(sqs, _FakeClient())

    messages = await provider.receive_messages(
        "https://sqs.us-east-1.amazonaws.com/1/orders",
        max_number_of_messages=50,
        visibility_timeout=120,
        wait_time_seconds=0,
    )

    assert [m.receipt_handle for m in messages] == ["rh1", "rh2"]
    _, params = sqs.calls[0]
    assert params["MaxNumberOfMessages"] == 10
    assert params["VisibilityTimeout"] == 120
    assert params["AttributeNames"] == ["All"]


@pytest.mark.asyncio
async def test_send_message_with_delay_and_attributes():
    sqs = _FakeClient(send_message={"MessageId": "m1"})
    provider = SqsSnsProvider(sqs, _FakeClient())

    message_id = await provider.send_message("url", "body", delay_seconds=5, message_attributes={"kind": "order"})

    assert message_id == "m1"
    assert sqs.calls == [
        (
            "send_message",
            {
                "QueueUrl": "url",
                "MessageBody": "body",
                "DelaySeconds": 5,
                "MessageAttributes": {"kind": {"DataType": "String", "StringValue": "order"}},
            },
        )
    ]


@pytest.mark.asyncio
async def test_nack_primitive_sets_visibility():
    sqs = _FakeClient()
    provider = SqsSnsProvider(sqs, _FakeClient())

    await provider.change_message_visibility("url", "rh1", 0)

    assert sqs.calls == [
        ("change_message_visibility", {"QueueUrl": "url", "ReceiptHandle": "rh1", "VisibilityTimeout": 0})
    ]


@pytest.mark.asyncio
async def test_subscribe_and_close():
    sqs, sns = _FakeClient(), _FakeClient(subscribe={"SubscriptionArn": "arn:sub"})
    provider = SqsSnsProvider(sqs, sns)

    assert await provider.subscribe("arn:topic", "sqs", "arn:queue") == "arn:sub"
    await provider.close()

    assert sns.calls == [("subscribe", {"TopicArn": "arn:topic", "Protocol": "sqs", "Endpoint": "arn:queue"})]
    assert sqs.closed and sns.closed


@pytest.mark.asyncio
async def test_receive_skips_messages_without_receipt_handle():
    sqs = _FakeClient(
        receive_message={
            "Messages": [
                {"MessageId": "broken", "Body": "b0"},
                {"MessageId": "m1", "ReceiptHandle": "rh1", "Body": "b1"},
            ]
        }
    )
    provider = SqsSnsProvider(sqs, _FakeClient())

    messages = await provider.receive_messages(
        "url", max_number_of_messages=10, visibility_timeout=30, wait_time_seconds=0
    )

    assert [m.message_id for m in messages] == ["m1"]


@pytest.mark.asyncio
async def test_malformed_message_on_one_queue_does_not_stop_the_others():
    sqs = _FakeClient(
        receive_message=[
            {"Messages": [{"MessageId": "broken", "Body": "bad"}]},
            {"Messages": [{"MessageId": "g1", "ReceiptHandle": "rh-g1", "Body": "good"}]},
        ]
    )
    handler = RecordingHandler()
    loop = ReceiveLoop(
        SqsSnsProvider(sqs, _FakeClient()),
        DispatchEngine(10),
        ErrorPolicy(False),
        lambda: [
            QueueRegistration("bad", "https://sqs.us-east-1.amazonaws.com/1/bad", handler),
            QueueRegistration("good", "https://sqs.us-east-1.amazonaws.com/1/good", handler),
        ],
        events=None,
        listen_interval_seconds=0,
        max_number_of_messages=10,
        visibility_timeout=30,
        wait_time_seconds=0,
    )

    assert await loop.poll_once() == 1

    assert [(queue, message.body) for queue, message in handler.calls] == [("good", "good")]
    assert [params["QueueUrl"].rsplit("/", 1)[-1] for _, params in sqs.calls] == ["bad", "good"]
