"""Notification action integration."""

import json

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError
from redis.asyncio import Redis
from redis.exceptions import RedisError

from ruleflow.actions.integrations.base import ActionIntegration, IntegrationResult
from ruleflow.core.config import Settings, get_settings
from ruleflow.core.exceptions import IntegrationError
from ruleflow.core.logging import get_logger
from ruleflow.models.action import NotificationAction
from ruleflow.models.activity import ActivityEntry, ActivityStatus, ActivityType
from ruleflow.models.context import ExecutionContext
from ruleflow.models.rule import utcnow
from ruleflow.storage.redis_client import get_redis
from ruleflow.storage.repository import RuleRepository

logger = get_logger(__name__)


class NotificationIntegration(ActionIntegration):
    """Delivers notifications to one of three targets.

    - ``pubsub``: JSON message published on ``<prefix>:<topic>``
    - ``activity``: entry appended to the activity log
    - ``telegram``: message sent by the configured bot to ``chat_id``
    """

    def __init__(
        self,
        redis: Redis | None = None,
        repository: RuleRepository | None = None,
        settings: Settings | None = None,
        bot: Bot | None = None,
    ):
        self._redis = redis
        self._repository = repository
        self._settings = settings or get_settings()
        self._bot = bot
        if self._bot is None and self._settings.telegram_bot_token:
            self._bot = Bot(token=self._settings.telegram_bot_token)

    @property
    def redis(self) -> Redis:
        return self._redis or get_redis()

    @property
    def action_type(self) -> str:
        return "notification"

    def channel(self, topic: str | None) -> str:
        return f"{self._settings.notification_channel_prefix}:{topic or 'default'}"

    async def execute(
        self,
        action: NotificationAction,
        context: ExecutionContext,
    ) -> IntegrationResult:
        target = action.target or self._settings.notification_default_target

        if target == "pubsub":
            return await self._publish(action, context)
        if target == "activity":
            return await self._log_activity(action)
        return await self._send_telegram(action)

    async def _publish(
        self,
        action: NotificationAction,
        context: ExecutionContext,
    ) -> IntegrationResult:
        channel = self.channel(action.topic)
        payload = json.dumps(
            {
                "subject": action.subject,
                "message": action.message,
                "topic": action.topic,
                "event_type": context.event_type,
                "timestamp": utcnow().isoformat(),
            }
        )
        try:
            receivers = await self.redis.publish(channel, payload)
        except RedisError as e:
            logger.error("Notification publish failed", channel=channel, error=str(e))
            raise IntegrationError(f"Notification publish failed: {e}") from e

        logger.info("Notification published", channel=channel, receivers=receivers)
        return IntegrationResult.ok(
            {
                "target": "pubsub",
                "channel": channel,
                "subject": action.subject,
                "message": action.message,
                "receivers": receivers,
                "sent": True,
            }
        )

    async def _log_activity(self, action: NotificationAction) -> IntegrationResult:
        if self._repository is None:
            return IntegrationResult.fail("Activity target requires a repository")

        entry = ActivityEntry(
            type=ActivityType.NOTIFICATION_SENT,
            message=action.message,
            status=ActivityStatus.INFO,
            details=action.subject,
        )
        await self._repository.log_activity(entry)
        return IntegrationResult.ok(
            {
                "target": "activity",
                "subject": action.subject,
                "message": action.message,
                "message_id": entry.id,
                "sent": True,
            }
        )

    async def _send_telegram(self, action: NotificationAction) -> IntegrationResult:
        if not self._bot:
            logger.warning("Telegram bot not configured")
            return IntegrationResult.fail("Telegram bot not configured")
        if not action.chat_id:
            return IntegrationResult.fail("Telegram target requires chat_id")

        text = f"*{action.subject}*\n{action.message}" if action.subject else action.message
        try:
            message = await self._bot.send_message(
                chat_id=action.chat_id,
                text=text,
                parse_mode="Markdown",
            )
        except TelegramAPIError as e:
            logger.error("Telegram send failed", chat_id=action.chat_id, error=str(e))
            raise IntegrationError(f"Telegram send failed: {e}") from e

        logger.info("Telegram message sent", chat_id=action.chat_id)
        return IntegrationResult.ok(
            {
                "target": "telegram",
                "chat_id": action.chat_id,
                "message": action.message,
                "message_id": message.message_id,
                "sent": True,
            }
        )

    async def close(self) -> None:
        """Close bot session."""
        if self._bot:
            await self._bot.session.close()
