"""Rule domain models."""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field, computed_field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RuleStatus(str, Enum):
    """Rule lifecycle status."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    DRAFT = "draft"


class RuleMetadata(BaseModel):
    """Rule metadata."""

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    created_by: str = Field(default="system")


class RulePerformance(BaseModel):
    """Aggregate execution counters maintained by the engine."""

    execution_count: int = Field(default=0, ge=0)
    success_count: int = Field(default=0, ge=0)
    failure_count: int = Field(default=0, ge=0)
    total_execution_ms: int = Field(default=0, ge=0)
    last_executed: datetime | None = None
    last_successful_execution: datetime | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def success_rate(self) -> float:
        """Success percentage; skipped executions are not counted."""
        decided = self.success_count + self.failure_count
        if decided == 0:
            return 0.0
        return round(self.success_count * 100 / decided, 2)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def avg_execution_ms(self) -> float:
        if self.execution_count == 0:
            return 0.0
        return round(self.total_execution_ms / self.execution_count, 2)


class Rule(BaseModel):
    """Rule record as stored by the persistence layer."""

    rule_id: str = Field(..., min_length=1, description="Rule unique identifier")
    name: str = Field(..., description="Rule display name")
    description: str = Field(default="", description="Rule description")
    dsl: str = Field(..., description="Rule source text (WHEN/AND/OR/THEN)")
    status: RuleStatus = Field(default=RuleStatus.DRAFT, description="Lifecycle status")
    priority: int = Field(default=100, ge=0, description="Rule priority (lower fires first)")
    tags: set[str] = Field(default_factory=set, description="Tags, including event types")
    performance: RulePerformance = Field(default_factory=RulePerformance)
    metadata: RuleMetadata = Field(default_factory=RuleMetadata)

    @property
    def is_active(self) -> bool:
        return self.status == RuleStatus.ACTIVE

    @property
    def execution_count(self) -> int:
        return self.performance.execution_count

    @property
    def success_rate(self) -> float:
        return self.performance.success_rate

    def matches_tags(self, tags: list[str] | set[str]) -> bool:
        """Check if the rule carries any of the given tags."""
        return bool(self.tags.intersection(tags))


class RuleFilter(BaseModel):
    """Filter for selecting active rules."""

    tags: list[str] | None = Field(default=None, description="Match rules carrying any of these tags")
    min_priority: int | None = Field(default=None, ge=0)
    max_priority: int | None = Field(default=None, ge=0)
    name_contains: str | None = None

    def matches(self, rule: Rule) -> bool:
        if self.tags and not rule.matches_tags(self.tags):
            return False
        if self.min_priority is not None and rule.priority < self.min_priority:
            return False
        if self.max_priority is not None and rule.priority > self.max_priority:
            return False
        if self.name_contains and self.name_contains.lower() not in rule.name.lower():
            return False
        return True
