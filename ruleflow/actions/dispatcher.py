"""Action dispatcher: validates action configs and runs them on integrations."""

import asyncio
import time
from collections.abc import Iterable

from redis.asyncio import Redis

from ruleflow.actions.integrations.base import ActionIntegration, IntegrationResult
from ruleflow.actions.integrations.database import DatabaseIntegration
from ruleflow.actions.integrations.email import EmailIntegration
from ruleflow.actions.integrations.notification import NotificationIntegration
from ruleflow.actions.integrations.sms import SmsIntegration
from ruleflow.actions.integrations.webhook import WebhookIntegration
from ruleflow.core.config import Settings, get_settings
from ruleflow.core.exceptions import ActionValidationError, IntegrationError
from ruleflow.core.logging import get_logger
from ruleflow.engine.interpolation import render_object
from ruleflow.models.action import ACTION_TYPE_VALUES, ActionConfig, ActionResult, WebhookAction
from ruleflow.models.context import ExecutionContext
from ruleflow.observability.metrics import ACTION_LATENCY, ACTIONS_EXECUTED
from ruleflow.storage.repository import RuleRepository

logger = get_logger(__name__)

# Slack on top of the webhook's own HTTP timeout
WEBHOOK_DEADLINE_SLACK_SECONDS = 1.0


class ActionDispatcher:
    """Routes typed actions to their integrations."""

    def __init__(
        self,
        integrations: Iterable[ActionIntegration],
        repository: RuleRepository | None = None,
        settings: Settings | None = None,
    ):
        """Initialize dispatcher.

        Args:
            integrations: One integration per action type
            repository: Store for stored-action performance counters
            settings: Settings override

        Raises:
            ValueError: If an action type has no integration
        """
        self._integrations = {i.action_type: i for i in integrations}
        missing = ACTION_TYPE_VALUES - set(self._integrations)
        if missing:
            raise ValueError(f"No integration registered for: {', '.join(sorted(missing))}")
        self._repository = repository
        self._settings = settings or get_settings()

    def _deadline(self, action: object) -> float:
        if isinstance(action, WebhookAction):
            timeout_ms = action.timeout or self._settings.webhook_default_timeout_ms
            return timeout_ms / 1000 + WEBHOOK_DEADLINE_SLACK_SECONDS
        return self._settings.action_timeout_seconds

    async def _run(self, config: ActionConfig, context: ExecutionContext) -> IntegrationResult:
        rendered = config.model_copy(update={"config": render_object(config.config, context)})
        try:
            action = rendered.to_action()
        except ActionValidationError as e:
            return IntegrationResult.fail(e.message)

        integration = self._integrations[action.type]
        deadline = self._deadline(action)
        try:
            return await asyncio.wait_for(integration.execute(action, context), timeout=deadline)
        except asyncio.TimeoutError:
            return IntegrationResult.fail(f"Action timed out after {deadline:g}s")
        except IntegrationError as e:
            return IntegrationResult.fail(e.message, status_code=e.status_code, data=e.details or None)

    async def execute(self, config: ActionConfig, context: ExecutionContext) -> ActionResult:
        """Execute one action.

        Never raises for action failures: validation errors, timeouts and
        integration errors are all reported in the returned result.

        Args:
            config: Action config parsed from the rule
            context: Execution context

        Returns:
            Action result
        """
        start = time.perf_counter()
        try:
            result = await self._run(config, context)
        except Exception as e:
            logger.error(
                "Action integration raised",
                action_id=config.id,
                action_type=config.type,
                error=str(e),
                exc_info=True,
            )
            result = IntegrationResult.fail(str(e) or type(e).__name__)
        elapsed = time.perf_counter() - start
        execution_ms = int(elapsed * 1000)

        status = "success" if result.success else "failure"
        ACTIONS_EXECUTED.labels(action_type=config.type, status=status).inc()
        ACTION_LATENCY.labels(action_type=config.type).observe(elapsed)

        if result.success:
            logger.info(
                "Action executed",
                action_id=config.id,
                action_type=config.type,
                execution_time=execution_ms,
            )
        else:
            logger.warning(
                "Action failed",
                action_id=config.id,
                action_type=config.type,
                error=result.error,
            )

        if config.action_ref:
            await self._record_action_performance(config.action_ref, execution_ms, result.success)

        return ActionResult(
            action_id=config.id,
            action_type=config.type,
            success=result.success,
            execution_time=execution_ms,
            data=result.data,
            error=result.error,
            status_code=result.status_code,
        )

    async def _record_action_performance(self, action_ref: str, execution_ms: int, success: bool) -> None:
        if self._repository is None:
            return
        try:
            await self._repository.update_action_performance(action_ref, execution_ms, success)
        except Exception as e:
            logger.warning("Action performance update failed", action_ref=action_ref, error=str(e))

    async def close(self) -> None:
        """Close every integration."""
        for integration in self._integrations.values():
            await integration.close()


def create_default_dispatcher(
    redis: Redis | None = None,
    repository: RuleRepository | None = None,
    settings: Settings | None = None,
) -> ActionDispatcher:
    """Build a dispatcher wired to the standard integrations."""
    settings = settings or get_settings()
    return ActionDispatcher(
        [
            EmailIntegration(settings=settings),
            SmsIntegration(settings=settings),
            WebhookIntegration(settings=settings),
            DatabaseIntegration(redis=redis, settings=settings),
            NotificationIntegration(redis=redis, repository=repository, settings=settings),
        ],
        repository=repository,
        settings=settings,
    )
