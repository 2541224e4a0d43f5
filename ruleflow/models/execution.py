"""Execution record domain models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from ruleflow.models.action import ActionResult


class ExecutionStatus(str, Enum):
    """Status of one rule-execution attempt."""

    RUNNING = "running"
    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"
    SKIPPED = "skipped"
    FAILED = "failed"


class ConditionResult(BaseModel):
    """Evaluation of a single condition clause."""

    expression: str = Field(..., description="Condition text as written in the rule")
    evaluated_expression: str | None = Field(
        default=None,
        description="Expression after variable interpolation",
    )
    result: bool = Field(..., description="Truthiness of the evaluated value")
    value: Any = Field(default=None, description="Raw evaluated value")
    evaluated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    error: str | None = None


class TriggeredBy(BaseModel):
    """What caused an execution."""

    event_type: str = Field(default="manual")
    event_data: dict[str, Any] = Field(default_factory=dict)


class ExecutionRecord(BaseModel):
    """Durable audit entry for one rule-execution attempt."""

    rule_id: str = Field(..., description="Rule that was evaluated")
    execution_id: str = Field(..., description="Execution unique identifier")
    triggered_by: TriggeredBy = Field(default_factory=TriggeredBy)
    start_time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    end_time: datetime | None = None
    status: ExecutionStatus = Field(default=ExecutionStatus.RUNNING)
    total_response_time: int = Field(default=0, ge=0, description="Milliseconds")
    conditions: list[ConditionResult] = Field(default_factory=list)
    actions: list[ActionResult] = Field(default_factory=list)
    error: str | None = None


class ExecutionResult(BaseModel):
    """Per-rule outcome returned to callers of the executor."""

    rule_id: str
    status: ExecutionStatus
    conditions_passed: bool = False
    actions_executed: int = Field(default=0, ge=0, description="Successful actions")
    execution_time: int = Field(default=0, ge=0, description="Milliseconds")
    conditions: list[ConditionResult] = Field(default_factory=list)
    action_results: list[ActionResult] = Field(default_factory=list)
    error: str | None = None
