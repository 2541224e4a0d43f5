"""Trigger processing handler."""

import time
from typing import Any

from pydantic import TypeAdapter, ValidationError

from ruleflow.actions.dispatcher import ActionDispatcher
from ruleflow.core.config import Settings, get_settings
from ruleflow.core.exceptions import TriggerError
from ruleflow.core.logging import get_logger
from ruleflow.engine.executor import RuleExecutor
from ruleflow.models.context import ExecutionContext, TriggerType
from ruleflow.models.execution import ExecutionResult, ExecutionStatus
from ruleflow.models.rule import Rule, RuleFilter
from ruleflow.models.trigger import (
    ApiTrigger,
    CustomTrigger,
    ScheduledTrigger,
    Trigger,
    TriggerSummary,
)
from ruleflow.observability.metrics import TRIGGERS_PROCESSED, TRIGGERS_RECEIVED
from ruleflow.storage.repository import RuleRepository

logger = get_logger(__name__)

_trigger_adapter: TypeAdapter[Trigger] = TypeAdapter(Trigger)


def parse_trigger(payload: dict[str, Any]) -> Trigger:
    """Validate a raw trigger payload.

    A payload without ``source`` is treated as a custom event when it carries
    an ``event_type``.

    Raises:
        TriggerError: If the source is unsupported or the payload is invalid
    """
    if "source" not in payload and "event_type" in payload:
        payload = {**payload, "source": "custom"}

    source = payload.get("source")
    if source not in ("scheduled", "api", "custom"):
        raise TriggerError(f"Unsupported trigger source: {source}")

    try:
        return _trigger_adapter.validate_python(payload)
    except ValidationError as e:
        raise TriggerError(
            "Invalid trigger payload",
            details={"errors": e.errors(include_url=False, include_context=False)},
        ) from e


def event_tags(event_type: str) -> list[str]:
    """Tags that select rules for an event type."""
    return [event_type, f"event:{event_type}"]


def summarize(execution_id: str, trigger_type: str, results: list[ExecutionResult]) -> TriggerSummary:
    successful = sum(1 for r in results if r.status == ExecutionStatus.SUCCESS)
    success_rate = round(successful * 100 / len(results), 2) if results else 100.0
    return TriggerSummary(
        execution_id=execution_id,
        trigger_type=trigger_type,
        rules_executed=len(results),
        actions_executed=sum(r.actions_executed for r in results),
        success_rate=success_rate,
        results=results,
    )


class TriggerHandler:
    """Turns a trigger into a rule selection plus context and runs the batch."""

    def __init__(
        self,
        repository: RuleRepository,
        dispatcher: ActionDispatcher,
        settings: Settings | None = None,
    ):
        """Initialize handler.

        Args:
            repository: Rule store
            dispatcher: Action dispatcher shared by all executions
            settings: Settings override
        """
        self._repository = repository
        self._dispatcher = dispatcher
        self._settings = settings or get_settings()

    async def handle(self, trigger: Trigger) -> TriggerSummary:
        """Process a trigger through the full pipeline.

        Args:
            trigger: Validated trigger

        Returns:
            Batch summary

        Raises:
            TriggerError: If the trigger references a missing rule
        """
        start_time = time.time()
        TRIGGERS_RECEIVED.labels(source=trigger.source).inc()

        try:
            if isinstance(trigger, ScheduledTrigger):
                rules, context = await self._prepare_scheduled(trigger)
            elif isinstance(trigger, ApiTrigger):
                rules, context = await self._prepare_api(trigger)
            else:
                rules, context = await self._prepare_custom(trigger)
        except TriggerError:
            TRIGGERS_PROCESSED.labels(source=trigger.source, status="rejected").inc()
            raise

        logger.info(
            "Processing trigger",
            source=trigger.source,
            event_type=context.event_type,
            rule_count=len(rules),
        )

        executor = RuleExecutor(self._repository, self._dispatcher)
        deadline = None
        if self._settings.batch_timeout_seconds:
            deadline = time.monotonic() + self._settings.batch_timeout_seconds

        results = await executor.execute_rules(
            rules,
            context,
            max_concurrency=self._settings.batch_max_concurrency,
            deadline=deadline,
        )
        summary = summarize(executor.execution_id, trigger.source, results)

        TRIGGERS_PROCESSED.labels(source=trigger.source, status="processed").inc()
        logger.info(
            "Trigger processing complete",
            source=trigger.source,
            execution_id=executor.execution_id,
            rules_executed=summary.rules_executed,
            actions_executed=summary.actions_executed,
            success_rate=summary.success_rate,
            elapsed_ms=int((time.time() - start_time) * 1000),
        )
        return summary

    async def handle_payload(self, payload: dict[str, Any]) -> TriggerSummary:
        """Validate and process a raw trigger payload."""
        return await self.handle(parse_trigger(payload))

    async def _prepare_scheduled(self, trigger: ScheduledTrigger) -> tuple[list[Rule], ExecutionContext]:
        rules = await self._repository.get_active_rules(
            RuleFilter(min_priority=1),
            limit=self._settings.batch_rule_limit,
        )
        context = ExecutionContext(
            trigger_type=TriggerType.SCHEDULED,
            event_type=trigger.event_type,
            event_data=trigger.detail,
        )
        return rules, context

    async def _prepare_api(self, trigger: ApiTrigger) -> tuple[list[Rule], ExecutionContext]:
        if trigger.rule_id:
            rule = await self._repository.get_rule(trigger.rule_id)
            if rule is None:
                raise TriggerError(f"Rule not found: {trigger.rule_id}")
            rules = [rule]
        elif trigger.event_type and trigger.event_type != "api_trigger":
            rules = await self._repository.get_rules_by_tags(
                event_tags(trigger.event_type),
                limit=self._settings.batch_rule_limit,
            )
        else:
            rules = await self._repository.get_active_rules(limit=self._settings.batch_rule_limit)

        context = ExecutionContext(
            trigger_type=TriggerType.API,
            event_type=trigger.event_type,
            event_data=trigger.data,
            customer=await self._load_entity("customer", trigger.customer_id),
            order=await self._load_entity("order", trigger.order_id),
            product=await self._load_entity("product", trigger.product_id),
        )
        return rules, context

    async def _prepare_custom(self, trigger: CustomTrigger) -> tuple[list[Rule], ExecutionContext]:
        if trigger.rule_filters:
            rules = await self._repository.get_active_rules(
                trigger.rule_filters,
                limit=self._settings.batch_rule_limit,
            )
        else:
            rules = await self._repository.get_rules_by_tags(
                event_tags(trigger.event_type),
                limit=self._settings.batch_rule_limit,
            )

        context = ExecutionContext(
            trigger_type=TriggerType.CUSTOM,
            event_type=trigger.event_type,
            event_data=trigger.data,
        )
        return rules, context

    async def _load_entity(self, kind: str, entity_id: str | None) -> dict[str, Any] | None:
        if not entity_id:
            return None
        entity = await self._repository.get_entity(kind, entity_id)
        if entity is None:
            logger.warning("Entity not found", kind=kind, entity_id=entity_id)
        return entity
