"""Persistence contract used by the rule executor and trigger handler."""

from abc import ABC, abstractmethod
from typing import Any

from ruleflow.models.activity import ActivityEntry
from ruleflow.models.execution import ExecutionRecord
from ruleflow.models.rule import Rule, RuleFilter

ENTITY_KINDS = ("customer", "order", "product")


class RuleRepository(ABC):
    """Abstract rule/execution/activity store."""

    @abstractmethod
    async def get_active_rules(self, filters: RuleFilter | None = None, limit: int = 100) -> list[Rule]:
        """Return active rules matching the filter, ordered by priority (lower first)."""

    @abstractmethod
    async def get_rule(self, rule_id: str) -> Rule | None:
        """Return a rule by id regardless of status."""

    @abstractmethod
    async def get_rules_by_tags(self, tags: list[str], limit: int = 100) -> list[Rule]:
        """Return active rules carrying any of the tags, ordered by priority."""

    @abstractmethod
    async def create_execution_record(self, record: ExecutionRecord) -> None:
        """Append an execution record. Records are never modified afterwards."""

    @abstractmethod
    async def update_rule_performance(
        self,
        rule_id: str,
        execution_time_ms: int,
        success: bool | None,
    ) -> None:
        """Update rule counters.

        Args:
            rule_id: Rule ID
            execution_time_ms: Duration of the attempt
            success: Outcome; ``None`` for a skip, which counts as an
                execution but not towards the success rate
        """

    @abstractmethod
    async def update_action_performance(
        self,
        action_id: str,
        execution_time_ms: int,
        success: bool,
    ) -> None:
        """Update counters of a stored action record."""

    @abstractmethod
    async def log_activity(self, entry: ActivityEntry) -> None:
        """Append an activity log entry."""

    @abstractmethod
    async def get_entity(self, kind: str, entity_id: str) -> dict[str, Any] | None:
        """Load a customer, order or product by id."""

    async def ping(self) -> bool:
        """Check backing store connectivity."""
        return True
