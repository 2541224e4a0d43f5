"""Tests for action dispatch and the built-in integrations."""

import asyncio
import json

import httpx
import pytest
from helpers import ACTION_TYPES, FakeIntegration

from ruleflow.actions.dispatcher import ActionDispatcher
from ruleflow.actions.integrations.base import IntegrationResult
from ruleflow.actions.integrations.database import DatabaseIntegration
from ruleflow.actions.integrations.email import EmailIntegration
from ruleflow.actions.integrations.notification import NotificationIntegration
from ruleflow.actions.integrations.sms import SmsIntegration
from ruleflow.actions.integrations.webhook import WebhookIntegration
from ruleflow.core.config import Settings
from ruleflow.core.exceptions import IntegrationError
from ruleflow.models.action import (
    ActionConfig,
    DatabaseAction,
    EmailAction,
    NotificationAction,
    SmsAction,
    WebhookAction,
)
from ruleflow.models.activity import ActivityType
from ruleflow.models.context import ExecutionContext
from ruleflow.storage.redis_client import RedisKeys


def make_config(action_type: str, action_ref: str | None = None, **config) -> ActionConfig:
    return ActionConfig(id=f"{action_type}_1", type=action_type, config=config, action_ref=action_ref)


class SlowIntegration(FakeIntegration):
    async def execute(self, action, context):
        await asyncio.sleep(1)
        return IntegrationResult.ok({})


class RaisingIntegration(FakeIntegration):
    async def execute(self, action, context):
        raise RuntimeError("boom")


class UnreachableIntegration(FakeIntegration):
    async def execute(self, action, context):
        raise IntegrationError("gateway unreachable", status_code=502)


def test_dispatcher_requires_every_action_type(integrations) -> None:
    integrations.pop("sms")

    with pytest.raises(ValueError, match="sms"):
        ActionDispatcher(integrations.values())


@pytest.mark.asyncio
async def test_execute_routes_to_integration(dispatcher, integrations, premium_context) -> None:
    result = await dispatcher.execute(
        make_config("email", to="sales@x.com", subject="Alert"),
        premium_context,
    )

    assert result.success
    assert result.action_type == "email"
    assert result.data == {"sent": True}
    sent = integrations["email"].calls[0]
    assert isinstance(sent, EmailAction)
    assert sent.to == ["sales@x.com"]
    assert integrations["sms"].calls == []


@pytest.mark.asyncio
async def test_missing_required_field_fails_without_calling(dispatcher, integrations, premium_context) -> None:
    result = await dispatcher.execute(make_config("email", to="sales@x.com"), premium_context)

    assert not result.success
    assert "subject" in result.error
    assert integrations["email"].calls == []


@pytest.mark.asyncio
async def test_unsupported_action_type_fails(dispatcher, premium_context) -> None:
    result = await dispatcher.execute(make_config("launch_rocket", target="moon"), premium_context)

    assert not result.success
    assert result.error == "Unsupported action type: launch_rocket"
    assert result.action_type == "launch_rocket"


@pytest.mark.asyncio
async def test_invalid_field_values_fail(dispatcher, premium_context) -> None:
    sms = await dispatcher.execute(make_config("sms", to="not-a-number", message="hi"), premium_context)
    webhook = await dispatcher.execute(
        make_config("webhook", url="ftp://example.com", method="POST"),
        premium_context,
    )
    no_method = await dispatcher.execute(make_config("webhook", url="https://example.com"), premium_context)

    assert not sms.success and "to" in sms.error
    assert not webhook.success and "url" in webhook.error
    assert not no_method.success and "method" in no_method.error


@pytest.mark.asyncio
async def test_templates_are_rendered_before_dispatch(dispatcher, integrations, premium_context) -> None:
    await dispatcher.execute(
        make_config("notification", message="Order {{order.id}} from {{customer.name}}"),
        premium_context,
    )

    sent = integrations["notification"].calls[0]
    assert isinstance(sent, NotificationAction)
    assert sent.message == "Order ord_1 from Ada"


@pytest.mark.asyncio
async def test_integration_failure_is_reported(integrations, premium_context) -> None:
    integrations["sms"] = FakeIntegration("sms", success=False, error="gateway down")
    dispatcher = ActionDispatcher(integrations.values())

    result = await dispatcher.execute(make_config("sms", to="+15550100", message="hi"), premium_context)

    assert not result.success
    assert result.error == "gateway down"


@pytest.mark.asyncio
async def test_integration_exception_becomes_failed_result(integrations, premium_context) -> None:
    integrations["sms"] = RaisingIntegration("sms")
    dispatcher = ActionDispatcher(integrations.values())

    result = await dispatcher.execute(make_config("sms", to="+15550100", message="hi"), premium_context)

    assert not result.success
    assert result.error == "boom"


@pytest.mark.asyncio
async def test_integration_error_becomes_failed_result(integrations, premium_context) -> None:
    integrations["sms"] = UnreachableIntegration("sms")
    dispatcher = ActionDispatcher(integrations.values())

    result = await dispatcher.execute(make_config("sms", to="+15550100", message="hi"), premium_context)

    assert not result.success
    assert result.error == "gateway unreachable"
    assert result.status_code == 502


@pytest.mark.asyncio
async def test_slow_integration_times_out(integrations, premium_context) -> None:
    integrations["notification"] = SlowIntegration("notification")
    dispatcher = ActionDispatcher(
        integrations.values(),
        settings=Settings(action_timeout_seconds=0.05),
    )

    result = await dispatcher.execute(make_config("notification", message="hi"), premium_context)

    assert not result.success
    assert result.error == "Action timed out after 0.05s"


@pytest.mark.asyncio
async def test_action_ref_updates_performance(dispatcher, repository, premium_context) -> None:
    await dispatcher.execute(make_config("notification", action_ref="act_7", message="hi"), premium_context)
    await dispatcher.execute(make_config("notification", message="no ref"), premium_context)

    assert len(repository.action_performance) == 1
    action_id, _, success = repository.action_performance[0]
    assert action_id == "act_7"
    assert success is True


@pytest.mark.asyncio
async def test_action_ref_without_repository_is_ignored(integrations, premium_context) -> None:
    dispatcher = ActionDispatcher(integrations.values())

    result = await dispatcher.execute(make_config("notification", action_ref="act_7", message="hi"), premium_context)

    assert result.success
    assert len(integrations["notification"].calls) == 1


@pytest.mark.asyncio
async def test_close_closes_integrations(dispatcher, integrations) -> None:
    await dispatcher.close()

    assert all(integrations[t].closed for t in ACTION_TYPES)


# Integrations


@pytest.mark.asyncio
async def test_email_integration_sends_via_smtp(settings, premium_context) -> None:
    sent = []

    async def sender(message, **kwargs):
        sent.append((message, kwargs))

    integration = EmailIntegration(settings=settings, sender=sender)
    action = EmailAction(to=["sales@x.com"], subject="Alert", template="high-value-order")

    result = await integration.execute(action, premium_context)

    assert result.success
    message, kwargs = sent[0]
    assert message["Subject"] == "Alert"
    assert kwargs["recipients"] == ["sales@x.com"]
    assert kwargs["hostname"] == "smtp.test.local"
    body = message.get_payload()[0].get_payload(decode=True).decode()
    assert "1500" in body and "Ada" in body


@pytest.mark.asyncio
async def test_email_integration_requires_smtp_host(premium_context) -> None:
    integration = EmailIntegration(settings=Settings(smtp_host=""))

    result = await integration.execute(EmailAction(to=["a@x.com"], subject="Hi"), premium_context)

    assert not result.success
    assert result.error == "SMTP not configured"


@pytest.mark.asyncio
async def test_sms_integration_posts_to_gateway(settings, premium_context) -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"message_id": "m-1"})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    integration = SmsIntegration(settings=settings, client=client)

    result = await integration.execute(SmsAction(to="+15550100", message="hi"), premium_context)

    assert result.success
    assert result.data["message_id"] == "m-1"
    assert requests[0].headers["Authorization"] == "Bearer test-key"
    assert json.loads(requests[0].content)["to"] == "+15550100"
    await integration.close()


@pytest.mark.asyncio
async def test_sms_integration_reports_gateway_rejection(settings, premium_context) -> None:
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(503)))
    integration = SmsIntegration(settings=settings, client=client)

    result = await integration.execute(SmsAction(to="+15550100", message="hi"), premium_context)

    assert not result.success
    assert result.status_code == 503
    await integration.close()


@pytest.mark.asyncio
async def test_webhook_integration_sends_json_body(settings, premium_context) -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(201, json={"ok": True})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    integration = WebhookIntegration(settings=settings, client=client)
    action = WebhookAction(
        url="https://hooks.example.com/x",
        method="post",
        headers='{"X-Token": "abc"}',
        body='{"order": "ord_1"}',
    )

    result = await integration.execute(action, premium_context)

    assert result.success
    assert result.status_code == 201
    assert result.data["response_data"] == {"ok": True}
    assert requests[0].method == "POST"
    assert requests[0].headers["X-Token"] == "abc"
    assert json.loads(requests[0].content) == {"order": "ord_1"}
    await integration.close()


@pytest.mark.asyncio
async def test_webhook_non_success_status_is_a_failure(settings, premium_context) -> None:
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(500, text="oops")))
    integration = WebhookIntegration(settings=settings, client=client)

    result = await integration.execute(WebhookAction(url="https://x.test", method="GET"), premium_context)

    assert not result.success
    assert result.status_code == 500
    assert result.error == "Webhook returned HTTP 500"
    assert result.data["response_data"] == "oops"
    await integration.close()


@pytest.mark.asyncio
async def test_webhook_timeout(settings, premium_context) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    integration = WebhookIntegration(settings=settings, client=client)
    action = WebhookAction(url="https://x.test", method="GET", timeout=2000)

    with pytest.raises(IntegrationError, match="Webhook timed out after 2.0s"):
        await integration.execute(action, premium_context)
    await integration.close()


@pytest.mark.asyncio
async def test_database_integration_crud(redis, settings, premium_context) -> None:
    integration = DatabaseIntegration(redis=redis, settings=settings)

    created = await integration.execute(
        DatabaseAction(collection="orders", operation="create", id="ord_1", status="new"),
        premium_context,
    )
    updated = await integration.execute(
        DatabaseAction(collection="orders", operation="update", id="ord_1", status="flagged"),
        premium_context,
    )
    found = await integration.execute(
        DatabaseAction(collection="orders", operation="find", filter='{"status": "flagged"}'),
        premium_context,
    )

    assert created.success and created.data["result"] == 1
    assert updated.success and updated.data["result"] == 1
    assert found.data["result"] == 1
    assert found.data["documents"][0]["id"] == "ord_1"
    stored = json.loads(await redis.get(RedisKeys.data_document("orders", "ord_1")))
    assert stored["status"] == "flagged"

    deleted = await integration.execute(
        DatabaseAction(collection="orders", operation="delete", id="ord_1"),
        premium_context,
    )
    assert deleted.data["result"] == 1
    assert await redis.smembers(RedisKeys.data_index("orders")) == set()


@pytest.mark.asyncio
async def test_database_integration_enforces_collection_allow_list(redis, premium_context) -> None:
    integration = DatabaseIntegration(redis=redis, settings=Settings(data_collections=["orders"]))

    result = await integration.execute(
        DatabaseAction(collection="users", operation="insert", name="x"),
        premium_context,
    )

    assert not result.success
    assert result.error == "Unknown collection: users"


@pytest.mark.asyncio
async def test_notification_publishes_to_channel(redis, settings, premium_context) -> None:
    pubsub = redis.pubsub()
    await pubsub.subscribe("ruleflow:notifications:orders")
    integration = NotificationIntegration(redis=redis, settings=settings)

    result = await integration.execute(NotificationAction(message="hi", topic="orders"), premium_context)

    assert result.success
    assert result.data["channel"] == "ruleflow:notifications:orders"
    assert result.data["receivers"] == 1
    await pubsub.unsubscribe()
    await pubsub.aclose()


@pytest.mark.asyncio
async def test_notification_activity_target(repository, settings, premium_context) -> None:
    integration = NotificationIntegration(repository=repository, settings=settings)

    result = await integration.execute(
        NotificationAction(message="Stock low", subject="Inventory", target="activity"),
        premium_context,
    )

    assert result.success
    assert repository.activities[0].type == ActivityType.NOTIFICATION_SENT
    assert repository.activities[0].message == "Stock low"


@pytest.mark.asyncio
async def test_notification_telegram_requires_bot(settings, premium_context) -> None:
    integration = NotificationIntegration(settings=settings)

    result = await integration.execute(
        NotificationAction(message="hi", target="telegram", chat_id="42"),
        ExecutionContext(),
    )

    assert not result.success
    assert result.error == "Telegram bot not configured"
