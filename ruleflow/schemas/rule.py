"""Rule validation and dry-run API schemas."""

from typing import Any

from pydantic import BaseModel, Field, model_validator

from ruleflow.models.action import ActionConfig
from ruleflow.models.context import TriggerType
from ruleflow.models.execution import ConditionResult


class ValidateRequest(BaseModel):
    """Request schema for DSL validation."""

    dsl: str = Field(..., description="Rule DSL text to validate")


class ValidateResponse(BaseModel):
    """Response schema for DSL validation."""

    valid: bool = Field(..., description="Whether the DSL is valid")
    errors: list[str] = Field(default_factory=list, description="Validation errors")
    conditions: list[str] = Field(default_factory=list, description="Condition clauses")
    actions: list[str] = Field(default_factory=list, description="Action clauses")


class TestContext(BaseModel):
    """Context supplied for a dry run."""

    trigger_type: TriggerType = Field(default=TriggerType.MANUAL)
    event_type: str = Field(default="")
    event_data: dict[str, Any] = Field(default_factory=dict)
    customer: dict[str, Any] | None = None
    order: dict[str, Any] | None = None
    product: dict[str, Any] | None = None
    extra: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional top-level objects addressable by key",
    )


class TestRequest(BaseModel):
    """Request schema for a rule dry run.

    Exactly one of ``dsl`` and ``rule_id`` must be given.
    """

    dsl: str | None = Field(default=None, description="Rule DSL to evaluate")
    rule_id: str | None = Field(default=None, description="Stored rule to evaluate")
    context: TestContext = Field(default_factory=TestContext)

    @model_validator(mode="after")
    def check_source(self) -> "TestRequest":
        if bool(self.dsl) == bool(self.rule_id):
            raise ValueError("Provide exactly one of dsl or rule_id")
        return self


class TestResponse(BaseModel):
    """Response schema for a rule dry run."""

    conditions_passed: bool = Field(..., description="Whether all conditions passed")
    conditions: list[ConditionResult] = Field(default_factory=list)
    actions: list[ActionConfig] = Field(
        default_factory=list,
        description="Actions that would be dispatched",
    )
    action_errors: list[str] = Field(default_factory=list)
    total_latency_ms: int = Field(default=0, description="Total processing time in ms")
