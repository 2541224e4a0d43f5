"""Redis client management."""

import redis.asyncio as redis
from redis.asyncio import Redis
from redis.exceptions import RedisError

from ruleflow.core.config import get_settings
from ruleflow.core.logging import get_logger

logger = get_logger(__name__)

# Global connection pool
_pool: redis.ConnectionPool | None = None


async def init_redis_pool() -> None:
    """Initialize Redis connection pool."""
    global _pool
    if _pool is None:
        settings = get_settings()
        _pool = redis.ConnectionPool.from_url(
            settings.redis_url,
            decode_responses=True,
            max_connections=settings.redis_max_connections,
        )


async def close_redis_pool() -> None:
    """Close Redis connection pool."""
    global _pool
    if _pool is not None:
        await _pool.disconnect()
        _pool = None


def get_redis() -> Redis:
    """Get Redis client from pool.

    Returns:
        Redis client instance

    Raises:
        RuntimeError: If pool not initialized
    """
    if _pool is None:
        raise RuntimeError("Redis pool not initialized. Call init_redis_pool() first.")
    return redis.Redis(connection_pool=_pool)


async def ping_redis(client: Redis | None = None) -> bool:
    """Check Redis connectivity.

    Returns:
        True if Redis answered the ping
    """
    try:
        return bool(await (client or get_redis()).ping())
    except (RedisError, OSError, RuntimeError) as e:
        logger.warning("Redis ping failed", error=str(e))
        return False


# Key prefixes
class RedisKeys:
    """Redis key patterns."""

    # Rules
    RULE_DETAIL = "ruleflow:rules:detail:{rule_id}"
    RULE_PERFORMANCE = "ruleflow:rules:performance:{rule_id}"
    RULE_TAG = "ruleflow:rules:tag:{tag}"
    RULE_ALL = "ruleflow:rules:all"
    RULE_ACTIVE = "ruleflow:rules:active"

    # Execution history and activity
    EXECUTIONS = "ruleflow:executions:{rule_id}"
    ACTIVITY = "ruleflow:activity"

    # Entities looked up by API triggers (customer / order / product)
    ENTITY = "ruleflow:entities:{kind}:{entity_id}"

    # Stored action records
    ACTION_PERFORMANCE = "ruleflow:actions:performance:{action_id}"

    # Documents written by database actions
    DATA_DOCUMENT = "ruleflow:data:{collection}:{doc_id}"
    DATA_INDEX = "ruleflow:data:{collection}:index"

    @classmethod
    def rule_detail(cls, rule_id: str) -> str:
        return cls.RULE_DETAIL.format(rule_id=rule_id)

    @classmethod
    def rule_performance(cls, rule_id: str) -> str:
        return cls.RULE_PERFORMANCE.format(rule_id=rule_id)

    @classmethod
    def rule_tag(cls, tag: str) -> str:
        return cls.RULE_TAG.format(tag=tag)

    @classmethod
    def executions(cls, rule_id: str) -> str:
        return cls.EXECUTIONS.format(rule_id=rule_id)

    @classmethod
    def entity(cls, kind: str, entity_id: str) -> str:
        return cls.ENTITY.format(kind=kind, entity_id=entity_id)

    @classmethod
    def action_performance(cls, action_id: str) -> str:
        return cls.ACTION_PERFORMANCE.format(action_id=action_id)

    @classmethod
    def data_document(cls, collection: str, doc_id: str) -> str:
        return cls.DATA_DOCUMENT.format(collection=collection, doc_id=doc_id)

    @classmethod
    def data_index(cls, collection: str) -> str:
        return cls.DATA_INDEX.format(collection=collection)
