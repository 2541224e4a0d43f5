"""In-memory collaborators shared by the tests."""

from typing import Any

from ruleflow.actions.integrations.base import ActionIntegration, IntegrationResult
from ruleflow.models.activity import ActivityEntry
from ruleflow.models.context import ExecutionContext
from ruleflow.models.execution import ExecutionRecord
from ruleflow.models.rule import Rule, RuleFilter, RuleStatus
from ruleflow.storage.repository import RuleRepository


class FakeRepository(RuleRepository):
    """In-memory repository for executor and handler tests."""

    def __init__(self, rules: list[Rule] | None = None):
        self.rules = {rule.rule_id: rule for rule in rules or []}
        self.records: list[ExecutionRecord] = []
        self.performance: list[tuple[str, int, bool | None]] = []
        self.action_performance: list[tuple[str, int, bool]] = []
        self.activities: list[ActivityEntry] = []
        self.entities: dict[tuple[str, str], dict[str, Any]] = {}
        self.fail_on_record = False

    def _active(self) -> list[Rule]:
        return sorted(
            (r for r in self.rules.values() if r.is_active),
            key=lambda r: (r.priority, r.rule_id),
        )

    async def get_active_rules(self, filters: RuleFilter | None = None, limit: int = 100) -> list[Rule]:
        return [r for r in self._active() if not filters or filters.matches(r)][:limit]

    async def get_rule(self, rule_id: str) -> Rule | None:
        return self.rules.get(rule_id)

    async def get_rules_by_tags(self, tags: list[str], limit: int = 100) -> list[Rule]:
        return [r for r in self._active() if r.matches_tags(tags)][:limit]

    async def create_execution_record(self, record: ExecutionRecord) -> None:
        if self.fail_on_record:
            raise ConnectionError("store unavailable")
        self.records.append(record)

    async def update_rule_performance(
        self,
        rule_id: str,
        execution_time_ms: int,
        success: bool | None,
    ) -> None:
        self.performance.append((rule_id, execution_time_ms, success))

    async def update_action_performance(self, action_id: str, execution_time_ms: int, success: bool) -> None:
        self.action_performance.append((action_id, execution_time_ms, success))

    async def log_activity(self, entry: ActivityEntry) -> None:
        self.activities.append(entry)

    async def get_entity(self, kind: str, entity_id: str) -> dict[str, Any] | None:
        return self.entities.get((kind, entity_id))


class FakeIntegration(ActionIntegration):
    """Integration that records calls and returns a canned outcome."""

    def __init__(self, action_type: str, success: bool = True, error: str = "collaborator failed"):
        self._action_type = action_type
        self.success = success
        self.error = error
        self.calls: list[Any] = []
        self.closed = False

    @property
    def action_type(self) -> str:
        return self._action_type

    async def execute(self, action: Any, context: ExecutionContext) -> IntegrationResult:
        self.calls.append(action)
        if self.success:
            return IntegrationResult.ok({"sent": True})
        return IntegrationResult.fail(self.error)

    async def close(self) -> None:
        self.closed = True


ACTION_TYPES = ("email", "sms", "webhook", "database", "notification")


def make_rule(
    rule_id: str,
    dsl: str,
    priority: int = 100,
    tags: set[str] | None = None,
    status: RuleStatus = RuleStatus.ACTIVE,
    name: str | None = None,
) -> Rule:
    return Rule(
        rule_id=rule_id,
        name=name or f"Rule {rule_id}",
        dsl=dsl,
        status=status,
        priority=priority,
        tags=tags or set(),
    )


HIGH_VALUE_DSL = (
    "WHEN order.total > 1000\n"
    'AND customer.tier == "premium"\n'
    'THEN send_email(to: "sales@x.com", subject: "Alert")'
)
