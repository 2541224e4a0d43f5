"""Pytest configuration and fixtures."""

from typing import AsyncIterator

import fakeredis
import pytest
import pytest_asyncio
from helpers import ACTION_TYPES, FakeIntegration, FakeRepository

from ruleflow.actions.dispatcher import ActionDispatcher
from ruleflow.core.config import Settings
from ruleflow.models.context import ExecutionContext


@pytest.fixture
def settings() -> Settings:
    return Settings(
        smtp_host="smtp.test.local",
        sms_gateway_url="https://sms.test.local/send",
        sms_api_key="test-key",
        action_timeout_seconds=2.0,
    )


@pytest.fixture
def integrations() -> dict[str, FakeIntegration]:
    return {action_type: FakeIntegration(action_type) for action_type in ACTION_TYPES}


@pytest.fixture
def repository() -> FakeRepository:
    return FakeRepository()


@pytest.fixture
def dispatcher(integrations, repository, settings) -> ActionDispatcher:
    return ActionDispatcher(integrations.values(), repository=repository, settings=settings)


@pytest.fixture
def premium_context() -> ExecutionContext:
    return ExecutionContext(
        order={"id": "ord_1", "total": 1500},
        customer={"name": "Ada", "tier": "premium", "email": "ada@example.com"},
    )


@pytest_asyncio.fixture
async def redis() -> AsyncIterator[fakeredis.FakeAsyncRedis]:
    """In-memory Redis."""
    client = fakeredis.FakeAsyncRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()
