"""Trigger API routes."""

from typing import Annotated, Union

from fastapi import APIRouter, Body

from ruleflow.api.deps import TriggerHandlerDep
from ruleflow.models.trigger import ApiTrigger, CustomTrigger, ScheduledTrigger, TriggerSummary
from ruleflow.schemas.common import APIResponse
from ruleflow.schemas.trigger import RuleOutcome, TriggerResponse

router = APIRouter(prefix="/triggers", tags=["triggers"])

TriggerBody = Annotated[
    Union[ScheduledTrigger, ApiTrigger, CustomTrigger],
    Body(discriminator="source"),
]


def to_response(summary: TriggerSummary) -> TriggerResponse:
    return TriggerResponse(
        execution_id=summary.execution_id,
        trigger_type=summary.trigger_type,
        rules_executed=summary.rules_executed,
        actions_executed=summary.actions_executed,
        success_rate=summary.success_rate,
        results=[
            RuleOutcome(
                rule_id=r.rule_id,
                status=r.status,
                conditions_passed=r.conditions_passed,
                actions_executed=r.actions_executed,
                execution_time=r.execution_time,
                error=r.error,
            )
            for r in summary.results
        ],
    )


@router.post("", response_model=APIResponse[TriggerResponse])
async def run_trigger(
    data: TriggerBody,
    handler: TriggerHandlerDep,
) -> APIResponse[TriggerResponse]:
    """Run a trigger and return the batch summary.

    The body's ``source`` selects the trigger kind: ``scheduled``, ``api``
    or ``custom``.
    """
    summary = await handler.handle(data)
    return APIResponse(data=to_response(summary))
