"""Tests for the rule executor."""

import asyncio
import time

import pytest
from helpers import HIGH_VALUE_DSL, FakeIntegration, FakeRepository, make_rule

import ruleflow.engine.executor as executor_module
from ruleflow.actions.dispatcher import ActionDispatcher
from ruleflow.engine.executor import RuleExecutor, dry_run
from ruleflow.models.activity import ActivityStatus, ActivityType
from ruleflow.models.context import ExecutionContext
from ruleflow.models.execution import ExecutionStatus


@pytest.fixture
def executor(repository, dispatcher) -> RuleExecutor:
    return RuleExecutor(repository, dispatcher, execution_id="exec_test")


@pytest.mark.asyncio
async def test_matching_rule_runs_actions(executor, repository, integrations, premium_context) -> None:
    rule = make_rule("rule_1", HIGH_VALUE_DSL)

    result = await executor.execute_rule(rule, premium_context)

    assert result.status == ExecutionStatus.SUCCESS
    assert result.conditions_passed
    assert result.actions_executed == 1
    assert [c.result for c in result.conditions] == [True, True]
    assert len(integrations["email"].calls) == 1
    assert integrations["email"].calls[0].subject == "Alert"

    record = repository.records[0]
    assert record.execution_id == "exec_test_rule_1"
    assert record.status == ExecutionStatus.SUCCESS
    assert record.end_time is not None
    assert repository.performance == [("rule_1", record.total_response_time, True)]
    assert repository.activities[0].type == ActivityType.RULE_TRIGGERED
    assert repository.activities[0].status == ActivityStatus.SUCCESS


@pytest.mark.asyncio
async def test_unmatched_rule_is_skipped(executor, repository, integrations) -> None:
    rule = make_rule("rule_1", HIGH_VALUE_DSL)
    context = ExecutionContext(
        order={"id": "ord_2", "total": 500},
        customer={"tier": "premium"},
    )

    result = await executor.execute_rule(rule, context)

    assert result.status == ExecutionStatus.SKIPPED
    assert not result.conditions_passed
    assert result.conditions[0].result is False
    assert integrations["email"].calls == []
    assert repository.performance[0][2] is None
    assert repository.activities[0].type == ActivityType.RULE_EVALUATED


@pytest.mark.asyncio
async def test_all_actions_failing_is_partial_success(executor, repository, premium_context) -> None:
    rule = make_rule("rule_1", 'WHEN order.total > 1000\nTHEN send_email(to: "sales@x.com")')

    result = await executor.execute_rule(rule, premium_context)

    assert result.status == ExecutionStatus.PARTIAL_SUCCESS
    assert result.actions_executed == 0
    assert not result.action_results[0].success
    assert "subject" in result.action_results[0].error
    assert repository.performance[0][2] is False
    assert repository.activities[0].status == ActivityStatus.ERROR


@pytest.mark.asyncio
async def test_one_successful_action_is_success(executor, premium_context) -> None:
    rule = make_rule(
        "rule_1",
        "WHEN order.total > 1000\n"
        'THEN send_email(to: "sales@x.com")\n'
        'AND send_notification(message: "Order {{order.id}}")',
    )

    result = await executor.execute_rule(rule, premium_context)

    assert result.status == ExecutionStatus.SUCCESS
    assert result.actions_executed == 1
    assert [r.success for r in result.action_results] == [False, True]


@pytest.mark.asyncio
async def test_unparseable_action_is_a_failed_unknown_action(executor, premium_context) -> None:
    rule = make_rule(
        "rule_1",
        "WHEN order.total > 1000\nTHEN shout loudly\nAND send_email(to: sales@x.com)",
    )

    result = await executor.execute_rule(rule, premium_context)

    assert result.status == ExecutionStatus.PARTIAL_SUCCESS
    first, second = result.action_results
    assert first.action_type == "unknown"
    assert first.error == "Unable to parse action expression: shout loudly"
    assert second.action_type == "unknown"
    assert second.error.startswith("Invalid action expression:")


@pytest.mark.asyncio
async def test_condition_error_is_recorded_as_false(executor, premium_context) -> None:
    rule = make_rule("rule_1", 'WHEN order.total / 0 > 1\nTHEN send_notification(message: "x")')

    result = await executor.execute_rule(rule, premium_context)

    assert result.status == ExecutionStatus.SKIPPED
    assert result.conditions[0].error == "Division by zero"


@pytest.mark.asyncio
async def test_numeric_overflow_in_condition_is_recorded_as_false(executor, repository) -> None:
    rule = make_rule("rule_1", 'WHEN order.total / 2 > 1\nTHEN send_notification(message: "x")')
    context = ExecutionContext(order={"id": "ord_big", "total": 10**400})

    result = await executor.execute_rule(rule, context)

    assert result.status == ExecutionStatus.SKIPPED
    assert result.conditions[0].result is False
    assert "out of range" in result.conditions[0].error
    assert len(repository.records) == 1


@pytest.mark.asyncio
async def test_unexpected_evaluation_error_is_persisted_as_failed(
    executor, repository, premium_context, monkeypatch
) -> None:
    def _crash(parsed, context):
        raise RuntimeError("evaluator crashed")

    monkeypatch.setattr(executor_module, "evaluate_conditions", _crash)

    result = await executor.execute_rule(make_rule("rule_1", HIGH_VALUE_DSL), premium_context)

    assert result.status == ExecutionStatus.FAILED
    assert result.error == "evaluator crashed"
    assert len(repository.records) == 1
    assert repository.records[0].status == ExecutionStatus.FAILED
    assert repository.records[0].error == "evaluator crashed"
    assert repository.performance == [("rule_1", result.execution_time, False)]
    assert repository.activities[0].type == ActivityType.RULE_EXECUTION_FAILED


@pytest.mark.asyncio
async def test_or_clause_is_evaluated_conjunctively(executor, premium_context) -> None:
    rule = make_rule(
        "rule_1",
        'WHEN order.total > 1000\nOR customer.tier == "gold"\nTHEN send_notification(message: "x")',
    )

    result = await executor.execute_rule(rule, premium_context)

    assert result.status == ExecutionStatus.SKIPPED
    assert [c.result for c in result.conditions] == [True, False]


@pytest.mark.asyncio
async def test_batch_isolates_malformed_rule(executor, repository, integrations, premium_context) -> None:
    rules = [
        make_rule("rule_a", HIGH_VALUE_DSL, priority=1),
        make_rule("rule_b", "WHEN order.total > 1\nWHEN order.total > 2\nTHEN x()", priority=2),
        make_rule("rule_c", 'WHEN customer.tier == "premium"\nTHEN send_sms(to: "+15550100", message: "hi")', priority=3),
    ]

    results = await executor.execute_rules(rules, premium_context)

    assert [r.status for r in results] == [
        ExecutionStatus.SUCCESS,
        ExecutionStatus.FAILED,
        ExecutionStatus.SUCCESS,
    ]
    assert results[1].error == "multiple WHEN clauses"
    assert len(integrations["email"].calls) == 1
    assert len(integrations["sms"].calls) == 1
    assert len(repository.records) == 3
    assert repository.activities[1].type == ActivityType.RULE_EXECUTION_FAILED


@pytest.mark.asyncio
async def test_batch_runs_in_priority_order(executor, premium_context) -> None:
    dsl = 'WHEN order.total > 0\nTHEN send_notification(message: "x")'
    rules = [
        make_rule("low", dsl, priority=50),
        make_rule("first", dsl, priority=1),
        make_rule("tie_a", dsl, priority=10),
        make_rule("tie_b", dsl, priority=10),
    ]

    results = await executor.execute_rules(rules, premium_context)

    assert [r.rule_id for r in results] == ["first", "tie_a", "tie_b", "low"]


@pytest.mark.asyncio
async def test_empty_batch(executor, premium_context) -> None:
    assert await executor.execute_rules([], premium_context) == []


@pytest.mark.asyncio
async def test_persistence_failure_becomes_failed_result(dispatcher, premium_context) -> None:
    repository = FakeRepository()
    repository.fail_on_record = True
    executor = RuleExecutor(repository, dispatcher)

    results = await executor.execute_rules(
        [make_rule("rule_1", HIGH_VALUE_DSL), make_rule("rule_2", HIGH_VALUE_DSL)],
        premium_context,
    )

    assert [r.status for r in results] == [ExecutionStatus.FAILED, ExecutionStatus.FAILED]
    assert results[0].error == "store unavailable"


@pytest.mark.asyncio
async def test_cancelled_batch_starts_no_rules(executor, integrations, premium_context) -> None:
    cancel = asyncio.Event()
    cancel.set()

    results = await executor.execute_rules(
        [make_rule("rule_1", HIGH_VALUE_DSL)],
        premium_context,
        cancel_event=cancel,
    )

    assert results == []
    assert integrations["email"].calls == []


@pytest.mark.asyncio
async def test_expired_deadline_stops_batch(executor, premium_context) -> None:
    results = await executor.execute_rules(
        [make_rule("rule_1", HIGH_VALUE_DSL)],
        premium_context,
        deadline=time.monotonic() - 1,
    )

    assert results == []


@pytest.mark.asyncio
async def test_concurrent_batch_keeps_priority_order(integrations, repository, premium_context) -> None:
    dispatcher = ActionDispatcher(integrations.values(), repository=repository)
    executor = RuleExecutor(repository, dispatcher)
    dsl = 'WHEN order.total > 0\nTHEN send_notification(message: "x")'
    rules = [make_rule(f"rule_{i}", dsl, priority=10 - i) for i in range(5)]

    results = await executor.execute_rules(rules, premium_context, max_concurrency=3)

    assert [r.rule_id for r in results] == [f"rule_{i}" for i in reversed(range(5))]
    assert all(r.status == ExecutionStatus.SUCCESS for r in results)
    assert len(integrations["notification"].calls) == 5


@pytest.mark.asyncio
async def test_failing_integration_does_not_stop_batch(integrations, repository, premium_context) -> None:
    integrations["email"] = FakeIntegration("email", success=False)
    dispatcher = ActionDispatcher(integrations.values())
    executor = RuleExecutor(repository, dispatcher)

    results = await executor.execute_rules(
        [make_rule("rule_1", HIGH_VALUE_DSL, priority=1), make_rule("rule_2", HIGH_VALUE_DSL, priority=2)],
        premium_context,
    )

    assert [r.status for r in results] == [ExecutionStatus.PARTIAL_SUCCESS] * 2


def test_dry_run_reports_actions_without_dispatch(premium_context) -> None:
    result = dry_run(
        HIGH_VALUE_DSL + '\nAND send_notification(message: "Order {{order.id}}")\nAND send_sms(to: "x")',
        premium_context,
    )

    assert result.conditions_passed
    assert [a.type for a in result.actions] == ["email", "notification", "sms"]
    assert result.actions[1].config["message"] == "Order ord_1"
    assert len(result.action_errors) == 1
    assert "send_sms" in result.action_errors[0]


def test_dry_run_with_failing_conditions(premium_context) -> None:
    result = dry_run('WHEN order.total > 5000\nTHEN send_notification(message: "x")', premium_context)

    assert not result.conditions_passed
    assert result.actions == []
