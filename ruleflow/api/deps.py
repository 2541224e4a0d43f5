"""API dependency injection."""

from typing import Annotated

from fastapi import Depends, Request

from ruleflow.actions.dispatcher import ActionDispatcher
from ruleflow.messaging.handler import TriggerHandler
from ruleflow.storage.redis_client import get_redis
from ruleflow.storage.repository import RuleRepository
from ruleflow.storage.rule_store import RedisRuleRepository


def get_repository() -> RuleRepository:
    """Get rule repository instance."""
    return RedisRuleRepository(get_redis())


def get_dispatcher(request: Request) -> ActionDispatcher:
    """Get the dispatcher created at application startup."""
    return request.app.state.dispatcher


# Type aliases for dependency injection
RepositoryDep = Annotated[RuleRepository, Depends(get_repository)]
DispatcherDep = Annotated[ActionDispatcher, Depends(get_dispatcher)]


def get_trigger_handler(repository: RepositoryDep, dispatcher: DispatcherDep) -> TriggerHandler:
    """Get trigger handler bound to the request's repository."""
    return TriggerHandler(repository, dispatcher)


TriggerHandlerDep = Annotated[TriggerHandler, Depends(get_trigger_handler)]
