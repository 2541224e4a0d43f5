"""Rule executor: evaluates rules and fires their actions."""

import asyncio
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from ruleflow.actions.dispatcher import ActionDispatcher
from ruleflow.core.exceptions import ActionValidationError, RuleFlowError
from ruleflow.core.logging import get_logger
from ruleflow.engine.actions import parse_action_expression
from ruleflow.engine.conditions import evaluate_conditions
from ruleflow.engine.dsl import Clause, parse_dsl_cached
from ruleflow.engine.interpolation import render_object
from ruleflow.models.action import ActionConfig, ActionResult
from ruleflow.models.activity import ActivityEntry, ActivityStatus, ActivityType
from ruleflow.models.context import ExecutionContext
from ruleflow.models.execution import (
    ConditionResult,
    ExecutionRecord,
    ExecutionResult,
    ExecutionStatus,
    TriggeredBy,
)
from ruleflow.models.rule import Rule, utcnow
from ruleflow.observability.metrics import RULE_LATENCY, RULES_EXECUTED
from ruleflow.observability.tracing import TraceContext, generate_execution_id
from ruleflow.storage.repository import RuleRepository

logger = get_logger(__name__)

UNKNOWN_ACTION_TYPE = "unknown"


@dataclass
class DryRunResult:
    """What a rule would do against a context, without side effects."""

    conditions_passed: bool
    conditions: list[ConditionResult]
    actions: list[ActionConfig] = field(default_factory=list)
    action_errors: list[str] = field(default_factory=list)


def _performance_outcome(status: ExecutionStatus) -> bool | None:
    if status == ExecutionStatus.SKIPPED:
        return None
    return status == ExecutionStatus.SUCCESS


class RuleExecutor:
    """Runs rules against an execution context.

    One executor corresponds to one trigger; its ``execution_id`` prefixes the
    id of every execution record it writes.
    """

    def __init__(
        self,
        repository: RuleRepository,
        dispatcher: ActionDispatcher,
        execution_id: str | None = None,
    ):
        self._repository = repository
        self._dispatcher = dispatcher
        self.execution_id = execution_id or generate_execution_id()

    async def execute_rules(
        self,
        rules: Sequence[Rule],
        context: ExecutionContext,
        *,
        max_concurrency: int | None = None,
        cancel_event: asyncio.Event | None = None,
        deadline: float | None = None,
    ) -> list[ExecutionResult]:
        """Execute a batch of rules.

        Rules run in priority order (lower first, ties keep input order). A
        failing rule never affects the others: any exception becomes a
        ``failed`` result for that rule.

        Args:
            rules: Rules to execute
            context: Execution context shared by all rules
            max_concurrency: Rules run in parallel when greater than 1
            cancel_event: When set, no further rules are started
            deadline: ``time.monotonic()`` value after which no further
                rules are started

        Returns:
            One result per started rule, in priority order
        """
        if not rules:
            logger.info("No rules to execute")
            return []

        ordered = sorted(rules, key=lambda r: r.priority)

        def stopped() -> bool:
            if cancel_event is not None and cancel_event.is_set():
                return True
            return deadline is not None and time.monotonic() >= deadline

        with TraceContext(self.execution_id):
            logger.info(
                "Starting rule execution batch",
                rule_count=len(ordered),
                trigger_type=context.trigger_type.value,
            )

            if max_concurrency and max_concurrency > 1:
                results = await self._execute_concurrently(ordered, context, max_concurrency, stopped)
            else:
                results = []
                for rule in ordered:
                    if stopped():
                        logger.warning(
                            "Rule execution batch stopped",
                            started=len(results),
                            remaining=len(ordered) - len(results),
                        )
                        break
                    results.append(await self._execute_isolated(rule, context))

            logger.info(
                "Rule execution batch completed",
                total_rules=len(ordered),
                executed=len(results),
                successful=sum(1 for r in results if r.status == ExecutionStatus.SUCCESS),
                failed=sum(1 for r in results if r.status == ExecutionStatus.FAILED),
            )
        return results

    async def _execute_concurrently(
        self,
        rules: list[Rule],
        context: ExecutionContext,
        max_concurrency: int,
        stopped: Callable[[], bool],
    ) -> list[ExecutionResult]:
        semaphore = asyncio.Semaphore(max_concurrency)

        async def run(rule: Rule) -> ExecutionResult | None:
            async with semaphore:
                if stopped():
                    return None
                return await self._execute_isolated(rule, context)

        outcomes = await asyncio.gather(*(run(rule) for rule in rules))
        results = [r for r in outcomes if r is not None]
        if len(results) < len(rules):
            logger.warning(
                "Rule execution batch stopped",
                started=len(results),
                remaining=len(rules) - len(results),
            )
        return results

    async def _execute_isolated(self, rule: Rule, context: ExecutionContext) -> ExecutionResult:
        try:
            return await self.execute_rule(rule, context)
        except Exception as e:
            logger.error("Rule execution failed", rule_id=rule.rule_id, error=str(e), exc_info=True)
            RULES_EXECUTED.labels(status=ExecutionStatus.FAILED.value).inc()
            return ExecutionResult(
                rule_id=rule.rule_id,
                status=ExecutionStatus.FAILED,
                error=str(e) or type(e).__name__,
            )

    async def execute_rule(self, rule: Rule, context: ExecutionContext) -> ExecutionResult:
        """Execute a single rule and record the outcome.

        Raises:
            Exception: Only if persisting the outcome fails
        """
        start = time.perf_counter()
        record = ExecutionRecord(
            rule_id=rule.rule_id,
            execution_id=f"{self.execution_id}_{rule.rule_id}",
            triggered_by=TriggeredBy(
                event_type=context.event_type or context.trigger_type.value,
                event_data=context.event_data,
            ),
        )
        conditions_passed = False
        action_results: list[ActionResult] = []

        logger.info("Rule execution started", rule_id=rule.rule_id, rule_name=rule.name)

        try:
            parsed = parse_dsl_cached(rule.dsl)
            conditions_passed, record.conditions = evaluate_conditions(parsed, context)

            if conditions_passed:
                logger.info("Rule conditions passed, executing actions", rule_id=rule.rule_id)
                for clause in parsed.actions:
                    action_results.append(await self._execute_action(clause, context))
                succeeded = sum(1 for r in action_results if r.success)
                record.status = ExecutionStatus.SUCCESS if succeeded else ExecutionStatus.PARTIAL_SUCCESS
            else:
                logger.info("Rule conditions not met, skipping actions", rule_id=rule.rule_id)
                record.status = ExecutionStatus.SKIPPED
        except RuleFlowError as e:
            logger.warning("Rule evaluation failed", rule_id=rule.rule_id, error=e.message)
            record.status = ExecutionStatus.FAILED
            record.error = e.message
        except Exception as e:
            logger.error("Rule evaluation crashed", rule_id=rule.rule_id, error=str(e), exc_info=True)
            record.status = ExecutionStatus.FAILED
            record.error = str(e) or type(e).__name__

        elapsed = time.perf_counter() - start
        execution_ms = int(elapsed * 1000)
        record.end_time = utcnow()
        record.total_response_time = execution_ms
        record.actions = action_results

        await self._repository.create_execution_record(record)
        await self._repository.update_rule_performance(
            rule.rule_id,
            execution_ms,
            _performance_outcome(record.status),
        )
        await self._repository.log_activity(self._activity_for(rule, record))

        RULES_EXECUTED.labels(status=record.status.value).inc()
        RULE_LATENCY.observe(elapsed)

        actions_executed = sum(1 for r in action_results if r.success)
        logger.info(
            "Rule execution finished",
            rule_id=rule.rule_id,
            status=record.status.value,
            actions_executed=actions_executed,
            execution_time=execution_ms,
        )

        return ExecutionResult(
            rule_id=rule.rule_id,
            status=record.status,
            conditions_passed=conditions_passed,
            actions_executed=actions_executed,
            execution_time=execution_ms,
            conditions=record.conditions,
            action_results=action_results,
            error=record.error,
        )

    async def _execute_action(self, clause: Clause, context: ExecutionContext) -> ActionResult:
        """Parse and dispatch one action clause; parse failures become failed results."""
        try:
            config = parse_action_expression(clause.expression, context)
        except ActionValidationError as e:
            return ActionResult(
                action_id=f"invalid_{int(time.time() * 1000)}",
                action_type=UNKNOWN_ACTION_TYPE,
                success=False,
                error=f"Invalid action expression: {e.message}",
            )

        if config is None:
            return ActionResult(
                action_id=f"invalid_{int(time.time() * 1000)}",
                action_type=UNKNOWN_ACTION_TYPE,
                success=False,
                error=f"Unable to parse action expression: {clause.expression}",
            )

        return await self._dispatcher.execute(config, context)

    def _activity_for(self, rule: Rule, record: ExecutionRecord) -> ActivityEntry:
        succeeded = sum(1 for r in record.actions if r.success)
        details = f"Execution time: {record.total_response_time}ms, Actions executed: {succeeded}"

        if record.status == ExecutionStatus.FAILED:
            return ActivityEntry(
                type=ActivityType.RULE_EXECUTION_FAILED,
                message=f'Rule "{rule.name}" execution failed: {record.error}',
                status=ActivityStatus.ERROR,
                rule_id=rule.rule_id,
                rule_name=rule.name,
                details=details,
            )
        if record.status == ExecutionStatus.SKIPPED:
            return ActivityEntry(
                type=ActivityType.RULE_EVALUATED,
                message=f'Rule "{rule.name}" evaluated but conditions not met',
                status=ActivityStatus.INFO,
                rule_id=rule.rule_id,
                rule_name=rule.name,
                details=details,
            )
        return ActivityEntry(
            type=ActivityType.RULE_TRIGGERED,
            message=f'Rule "{rule.name}" triggered and executed',
            status=ActivityStatus.SUCCESS if succeeded else ActivityStatus.ERROR,
            rule_id=rule.rule_id,
            rule_name=rule.name,
            details=details,
        )


def dry_run(dsl: str, context: ExecutionContext) -> DryRunResult:
    """Evaluate a rule without dispatching actions or persisting anything.

    Raises:
        ParseError: If the DSL is invalid
    """
    parsed = parse_dsl_cached(dsl)
    passed, conditions = evaluate_conditions(parsed, context)
    result = DryRunResult(conditions_passed=passed, conditions=conditions)
    if not passed:
        return result

    for clause in parsed.actions:
        try:
            config = parse_action_expression(clause.expression, context)
        except ActionValidationError as e:
            result.action_errors.append(f"{clause.expression}: {e.message}")
            continue
        if config is None:
            result.action_errors.append(f"{clause.expression}: not a function call")
            continue
        rendered = config.model_copy(update={"config": render_object(config.config, context)})
        try:
            rendered.to_action()
        except ActionValidationError as e:
            result.action_errors.append(f"{clause.expression}: {e.message}")
        result.actions.append(rendered)
    return result
