"""Rule validation and dry-run API routes."""

import time

from fastapi import APIRouter, HTTPException

from ruleflow.api.deps import RepositoryDep
from ruleflow.core.exceptions import ActionValidationError, ParseError
from ruleflow.engine.actions import parse_action_expression
from ruleflow.engine.dsl import parse_dsl
from ruleflow.engine.executor import dry_run
from ruleflow.models.context import ExecutionContext
from ruleflow.models.rule import Rule
from ruleflow.schemas.common import APIResponse
from ruleflow.schemas.rule import (
    TestRequest,
    TestResponse,
    ValidateRequest,
    ValidateResponse,
)

router = APIRouter(prefix="/rules", tags=["rules"])


@router.post("/validate", response_model=APIResponse[ValidateResponse])
async def validate_rule(data: ValidateRequest) -> APIResponse[ValidateResponse]:
    """Validate rule DSL syntax.

    Checks the clause structure and that every action clause is a function
    call with a well-formed parameter list. Condition expressions are not
    evaluated since they depend on runtime data.
    """
    try:
        parsed = parse_dsl(data.dsl)
    except ParseError as e:
        error = f"line {e.line_number}: {e.message}" if e.line_number else e.message
        return APIResponse(data=ValidateResponse(valid=False, errors=[error]))

    errors: list[str] = []
    empty_context = ExecutionContext()
    for clause in parsed.actions:
        try:
            if parse_action_expression(clause.expression, empty_context) is None:
                errors.append(f"{clause.expression}: not a function call")
        except ActionValidationError as e:
            errors.append(f"{clause.expression}: {e.message}")

    return APIResponse(
        data=ValidateResponse(
            valid=not errors,
            errors=errors,
            conditions=[c.to_line() for c in parsed.conditions],
            actions=[a.to_line() for a in parsed.actions],
        )
    )


@router.post("/test", response_model=APIResponse[TestResponse])
async def test_rule(
    data: TestRequest,
    repository: RepositoryDep,
) -> APIResponse[TestResponse]:
    """Dry-run a rule against a supplied context.

    Conditions are evaluated and actions are parsed and validated, but
    nothing is dispatched and nothing is persisted.
    """
    start = time.perf_counter()

    dsl = data.dsl
    if data.rule_id:
        rule = await repository.get_rule(data.rule_id)
        if not rule:
            raise HTTPException(status_code=404, detail=f"Rule {data.rule_id} not found")
        dsl = rule.dsl

    ctx = data.context
    context = ExecutionContext(
        trigger_type=ctx.trigger_type,
        event_type=ctx.event_type,
        event_data=ctx.event_data,
        customer=ctx.customer,
        order=ctx.order,
        product=ctx.product,
        **{k: v for k, v in ctx.extra.items() if k not in ExecutionContext.model_fields},
    )

    try:
        result = dry_run(dsl or "", context)
    except ParseError as e:
        raise HTTPException(status_code=400, detail=f"Invalid DSL: {e.message}") from e

    return APIResponse(
        data=TestResponse(
            conditions_passed=result.conditions_passed,
            conditions=result.conditions,
            actions=result.actions,
            action_errors=result.action_errors,
            total_latency_ms=int((time.perf_counter() - start) * 1000),
        )
    )


@router.get("/{rule_id}", response_model=APIResponse[Rule])
async def get_rule(rule_id: str, repository: RepositoryDep) -> APIResponse[Rule]:
    """Get a rule with its performance counters."""
    rule = await repository.get_rule(rule_id)
    if not rule:
        raise HTTPException(status_code=404, detail=f"Rule {rule_id} not found")
    return APIResponse(data=rule)
