"""Redis-backed rule repository."""

import json
from datetime import datetime
from typing import Any

from redis.asyncio import Redis

from ruleflow.core.config import get_settings
from ruleflow.core.logging import get_logger
from ruleflow.models.activity import ActivityEntry
from ruleflow.models.execution import ExecutionRecord
from ruleflow.models.rule import Rule, RuleFilter, RulePerformance, utcnow
from ruleflow.storage.redis_client import RedisKeys, get_redis, ping_redis
from ruleflow.storage.repository import ENTITY_KINDS, RuleRepository

logger = get_logger(__name__)


def _parse_timestamp(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class RedisRuleRepository(RuleRepository):
    """Rule storage operations using Redis.

    Layout:
        - rule JSON in a hash (``config`` field), performance counters in a
          separate hash so they can be incremented atomically
        - active rules in a sorted set scored by priority
        - one set per tag
        - append-only execution list per rule
        - capped activity list, newest first
    """

    def __init__(self, redis: Redis | None = None, activity_max_entries: int | None = None):
        self._redis = redis
        self._activity_max_entries = activity_max_entries or get_settings().activity_log_max_entries

    @property
    def redis(self) -> Redis:
        return self._redis or get_redis()

    # -- rules ---------------------------------------------------------------

    async def save_rule(self, rule: Rule) -> Rule:
        """Create or replace a rule and its indexes.

        Performance counters are owned by ``update_rule_performance`` and are
        seeded from the model only when the rule is new.
        """
        existing = await self.get_rule(rule.rule_id)
        key = RedisKeys.rule_detail(rule.rule_id)

        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.hset(
                key,
                mapping={
                    "config": rule.model_dump_json(exclude={"performance"}),
                    "status": rule.status.value,
                    "priority": str(rule.priority),
                },
            )
            pipe.sadd(RedisKeys.RULE_ALL, rule.rule_id)

            if rule.is_active:
                pipe.zadd(RedisKeys.RULE_ACTIVE, {rule.rule_id: rule.priority})
            else:
                pipe.zrem(RedisKeys.RULE_ACTIVE, rule.rule_id)

            old_tags = existing.tags if existing else set()
            for tag in old_tags - rule.tags:
                pipe.srem(RedisKeys.rule_tag(tag), rule.rule_id)
            for tag in rule.tags - old_tags:
                pipe.sadd(RedisKeys.rule_tag(tag), rule.rule_id)

            if existing is None:
                perf = rule.performance
                pipe.hset(
                    RedisKeys.rule_performance(rule.rule_id),
                    mapping={
                        "execution_count": perf.execution_count,
                        "success_count": perf.success_count,
                        "failure_count": perf.failure_count,
                        "total_execution_ms": perf.total_execution_ms,
                    },
                )
            await pipe.execute()

        logger.info("Rule saved", rule_id=rule.rule_id, status=rule.status.value)
        return rule

    async def delete_rule(self, rule_id: str) -> bool:
        """Delete a rule and its indexes. Execution history is kept.

        Returns:
            True if deleted, False if not found
        """
        existing = await self.get_rule(rule_id)
        if not existing:
            return False

        async with self.redis.pipeline(transaction=True) as pipe:
            for tag in existing.tags:
                pipe.srem(RedisKeys.rule_tag(tag), rule_id)
            pipe.zrem(RedisKeys.RULE_ACTIVE, rule_id)
            pipe.srem(RedisKeys.RULE_ALL, rule_id)
            pipe.delete(RedisKeys.rule_detail(rule_id), RedisKeys.rule_performance(rule_id))
            await pipe.execute()
        return True

    async def get_rule(self, rule_id: str) -> Rule | None:
        data = await self.redis.hget(RedisKeys.rule_detail(rule_id), "config")
        if not data:
            return None
        rule = Rule.model_validate_json(data)
        rule.performance = await self.get_rule_performance(rule_id)
        return rule

    async def get_rule_performance(self, rule_id: str) -> RulePerformance:
        raw = await self.redis.hgetall(RedisKeys.rule_performance(rule_id))
        return RulePerformance(
            execution_count=int(raw.get("execution_count", 0)),
            success_count=int(raw.get("success_count", 0)),
            failure_count=int(raw.get("failure_count", 0)),
            total_execution_ms=int(raw.get("total_execution_ms", 0)),
            last_executed=_parse_timestamp(raw.get("last_executed")),
            last_successful_execution=_parse_timestamp(raw.get("last_successful_execution")),
        )

    async def get_active_rules(self, filters: RuleFilter | None = None, limit: int = 100) -> list[Rule]:
        rule_ids = await self.redis.zrange(RedisKeys.RULE_ACTIVE, 0, -1)
        rules: list[Rule] = []
        for rule_id in rule_ids:
            rule = await self.get_rule(rule_id)
            if rule is None or not rule.is_active:
                continue
            if filters and not filters.matches(rule):
                continue
            rules.append(rule)
            if len(rules) >= limit:
                break
        return rules

    async def get_rules_by_tags(self, tags: list[str], limit: int = 100) -> list[Rule]:
        if not tags:
            return []
        rule_ids = await self.redis.sunion([RedisKeys.rule_tag(tag) for tag in tags])
        rules: list[Rule] = []
        for rule_id in rule_ids:
            rule = await self.get_rule(rule_id)
            if rule and rule.is_active:
                rules.append(rule)
        rules.sort(key=lambda r: (r.priority, r.rule_id))
        return rules[:limit]

    async def list_rules(self) -> list[Rule]:
        """List all rules regardless of status."""
        rule_ids = await self.redis.smembers(RedisKeys.RULE_ALL)
        rules = []
        for rule_id in sorted(rule_ids):
            rule = await self.get_rule(rule_id)
            if rule:
                rules.append(rule)
        return rules

    # -- execution bookkeeping -------------------------------------------------

    async def create_execution_record(self, record: ExecutionRecord) -> None:
        await self.redis.rpush(RedisKeys.executions(record.rule_id), record.model_dump_json())

    async def get_executions(self, rule_id: str, limit: int = 50) -> list[ExecutionRecord]:
        """Return the most recent execution records of a rule, oldest first."""
        raw = await self.redis.lrange(RedisKeys.executions(rule_id), -limit, -1)
        return [ExecutionRecord.model_validate_json(item) for item in raw]

    async def update_rule_performance(
        self,
        rule_id: str,
        execution_time_ms: int,
        success: bool | None,
    ) -> None:
        key = RedisKeys.rule_performance(rule_id)
        now = utcnow().isoformat()

        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.hincrby(key, "execution_count", 1)
            pipe.hincrby(key, "total_execution_ms", max(execution_time_ms, 0))
            if success is True:
                pipe.hincrby(key, "success_count", 1)
                pipe.hset(key, "last_successful_execution", now)
            elif success is False:
                pipe.hincrby(key, "failure_count", 1)
            pipe.hset(key, "last_executed", now)
            await pipe.execute()

    async def update_action_performance(
        self,
        action_id: str,
        execution_time_ms: int,
        success: bool,
    ) -> None:
        key = RedisKeys.action_performance(action_id)
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.hincrby(key, "execution_count", 1)
            pipe.hincrby(key, "success_count" if success else "failure_count", 1)
            pipe.hincrby(key, "total_execution_ms", max(execution_time_ms, 0))
            pipe.hset(key, "last_executed", utcnow().isoformat())
            await pipe.execute()

    async def get_action_performance(self, action_id: str) -> dict[str, int]:
        raw = await self.redis.hgetall(RedisKeys.action_performance(action_id))
        return {k: int(v) for k, v in raw.items() if k != "last_executed"}

    async def log_activity(self, entry: ActivityEntry) -> None:
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.lpush(RedisKeys.ACTIVITY, entry.model_dump_json())
            pipe.ltrim(RedisKeys.ACTIVITY, 0, self._activity_max_entries - 1)
            await pipe.execute()

    async def get_recent_activity(self, limit: int = 50) -> list[ActivityEntry]:
        """Return activity entries, newest first."""
        raw = await self.redis.lrange(RedisKeys.ACTIVITY, 0, limit - 1)
        return [ActivityEntry.model_validate_json(item) for item in raw]

    # -- entities ----------------------------------------------------------------

    async def save_entity(self, kind: str, entity_id: str, data: dict[str, Any]) -> None:
        if kind not in ENTITY_KINDS:
            raise ValueError(f"Unknown entity kind: {kind}")
        await self.redis.set(RedisKeys.entity(kind, entity_id), json.dumps(data, default=str))

    async def get_entity(self, kind: str, entity_id: str) -> dict[str, Any] | None:
        if kind not in ENTITY_KINDS:
            raise ValueError(f"Unknown entity kind: {kind}")
        data = await self.redis.get(RedisKeys.entity(kind, entity_id))
        return json.loads(data) if data else None

    async def ping(self) -> bool:
        return await ping_redis(self.redis)
