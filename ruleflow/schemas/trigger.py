"""Trigger API schemas."""

from pydantic import BaseModel, Field

from ruleflow.models.execution import ExecutionStatus


class RuleOutcome(BaseModel):
    """Condensed per-rule result for the trigger response."""

    rule_id: str
    status: ExecutionStatus
    conditions_passed: bool
    actions_executed: int
    execution_time: int
    error: str | None = None


class TriggerResponse(BaseModel):
    """Response schema for a processed trigger."""

    execution_id: str = Field(..., description="Batch execution id")
    trigger_type: str = Field(..., description="Trigger source")
    rules_executed: int = Field(default=0)
    actions_executed: int = Field(default=0)
    success_rate: float = Field(default=100.0)
    results: list[RuleOutcome] = Field(default_factory=list)
