"""Database action integration: a small document store on Redis."""

import json
import uuid
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import RedisError

from ruleflow.actions.integrations.base import ActionIntegration, IntegrationResult
from ruleflow.core.config import Settings, get_settings
from ruleflow.core.exceptions import IntegrationError
from ruleflow.core.logging import get_logger
from ruleflow.models.action import DatabaseAction
from ruleflow.models.context import ExecutionContext
from ruleflow.models.rule import utcnow
from ruleflow.storage.redis_client import RedisKeys, get_redis

logger = get_logger(__name__)

QUERY_LIMIT = 100


def _matches(document: dict[str, Any], filter_: dict[str, Any]) -> bool:
    """Equality match on top-level fields (values compared as strings)."""
    return all(str(document.get(key)) == str(value) for key, value in filter_.items())


class DatabaseIntegration(ActionIntegration):
    """Stores documents per collection.

    Each document is a JSON string under ``ruleflow:data:{collection}:{id}``;
    a per-collection set indexes the ids. ``create``/``insert`` write a new
    document, ``update`` merges into the first match, ``delete`` removes the
    first match, ``find``/``query`` return up to 100 matches.
    """

    def __init__(self, redis: Redis | None = None, settings: Settings | None = None):
        self._redis = redis
        self._settings = settings or get_settings()

    @property
    def redis(self) -> Redis:
        return self._redis or get_redis()

    @property
    def action_type(self) -> str:
        return "database"

    async def execute(self, action: DatabaseAction, context: ExecutionContext) -> IntegrationResult:
        allowed = self._settings.data_collections
        if allowed and action.collection not in allowed:
            return IntegrationResult.fail(f"Unknown collection: {action.collection}")

        filter_ = action.filter or {}
        fields = action.fields
        # Flat DSL form: id: "..." selects the document, other fields are data
        if not filter_ and action.operation in ("update", "delete") and "id" in fields:
            filter_ = {"id": fields.pop("id")}
        try:
            if action.operation in ("create", "insert"):
                document = {**fields, **(action.data or {})}
                result: Any = await self._insert(action.collection, document)
                count = 1
            elif action.operation == "update":
                update = action.update or fields
                result = await self._update(action.collection, filter_, update)
                count = 1 if result else 0
            elif action.operation == "delete":
                result = await self._delete(action.collection, filter_ or fields)
                count = 1 if result else 0
            else:
                result = await self._find(action.collection, filter_ or fields)
                count = len(result)
        except RedisError as e:
            logger.error(
                "Database action failed",
                collection=action.collection,
                operation=action.operation,
                error=str(e),
            )
            raise IntegrationError(f"Database action failed: {e}") from e

        logger.info(
            "Database action executed",
            collection=action.collection,
            operation=action.operation,
            affected=count,
        )
        return IntegrationResult.ok(
            {
                "operation": action.operation,
                "collection": action.collection,
                "result": count,
                "documents": result if isinstance(result, list) else None,
                "executed": True,
            }
        )

    async def _load_all(self, collection: str) -> list[dict[str, Any]]:
        doc_ids = sorted(await self.redis.smembers(RedisKeys.data_index(collection)))
        documents = []
        for doc_id in doc_ids:
            raw = await self.redis.get(RedisKeys.data_document(collection, doc_id))
            if raw:
                documents.append(json.loads(raw))
        return documents

    async def _insert(self, collection: str, document: dict[str, Any]) -> dict[str, Any]:
        doc_id = str(document.get("id") or uuid.uuid4().hex)
        document = {**document, "id": doc_id, "created_at": utcnow().isoformat()}
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.set(RedisKeys.data_document(collection, doc_id), json.dumps(document, default=str))
            pipe.sadd(RedisKeys.data_index(collection), doc_id)
            await pipe.execute()
        return document

    async def _update(
        self,
        collection: str,
        filter_: dict[str, Any],
        update: dict[str, Any],
    ) -> dict[str, Any] | None:
        for document in await self._load_all(collection):
            if _matches(document, filter_):
                document.update(update)
                document["id"] = str(document["id"])
                document["updated_at"] = utcnow().isoformat()
                await self.redis.set(
                    RedisKeys.data_document(collection, document["id"]),
                    json.dumps(document, default=str),
                )
                return document
        return None

    async def _delete(self, collection: str, filter_: dict[str, Any]) -> dict[str, Any] | None:
        for document in await self._load_all(collection):
            if _matches(document, filter_):
                doc_id = str(document["id"])
                async with self.redis.pipeline(transaction=True) as pipe:
                    pipe.delete(RedisKeys.data_document(collection, doc_id))
                    pipe.srem(RedisKeys.data_index(collection), doc_id)
                    await pipe.execute()
                return document
        return None

    async def _find(self, collection: str, filter_: dict[str, Any]) -> list[dict[str, Any]]:
        matches = [d for d in await self._load_all(collection) if _matches(d, filter_)]
        return matches[:QUERY_LIMIT]
