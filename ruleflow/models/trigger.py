"""Trigger domain models."""

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field

from ruleflow.models.execution import ExecutionResult
from ruleflow.models.rule import RuleFilter


class ScheduledTrigger(BaseModel):
    """Periodic tick: runs every active rule with priority >= 1."""

    source: Literal["scheduled"] = "scheduled"
    event_type: str = Field(default="scheduled")
    detail: dict[str, Any] = Field(default_factory=dict, description="Scheduler payload")


class ApiTrigger(BaseModel):
    """Direct invocation, optionally scoped to a rule and entities."""

    source: Literal["api"] = "api"
    rule_id: str | None = Field(default=None, description="Run only this rule")
    event_type: str = Field(default="api_trigger")
    customer_id: str | None = None
    order_id: str | None = None
    product_id: str | None = None
    data: dict[str, Any] = Field(default_factory=dict, description="Event payload")


class CustomTrigger(BaseModel):
    """Application event, e.g. from the message queue."""

    source: Literal["custom"] = "custom"
    event_type: str = Field(..., min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)
    rule_filters: RuleFilter | None = Field(
        default=None,
        description="Select rules by filter instead of by event type tag",
    )


Trigger = Annotated[
    Union[ScheduledTrigger, ApiTrigger, CustomTrigger],
    Field(discriminator="source"),
]


class TriggerSummary(BaseModel):
    """Outcome of one trigger."""

    execution_id: str
    trigger_type: str
    rules_executed: int = Field(default=0, ge=0)
    actions_executed: int = Field(default=0, ge=0)
    success_rate: float = Field(default=100.0, description="Percentage of rules with status success")
    results: list[ExecutionResult] = Field(default_factory=list)
