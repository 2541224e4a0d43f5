"""SMS action integration backed by an HTTP gateway."""

import httpx

from ruleflow.actions.integrations.base import ActionIntegration, IntegrationResult
from ruleflow.core.config import Settings, get_settings
from ruleflow.core.exceptions import IntegrationError
from ruleflow.core.logging import get_logger
from ruleflow.models.action import SmsAction
from ruleflow.models.context import ExecutionContext

logger = get_logger(__name__)


class SmsIntegration(ActionIntegration):
    """Sends SMS by POSTing to a configured gateway.

    The gateway receives ``{"to", "message", "sender"}`` as JSON with a bearer
    token and is expected to answer 2xx with an optional ``message_id``.
    """

    def __init__(self, settings: Settings | None = None, client: httpx.AsyncClient | None = None):
        self._settings = settings or get_settings()
        self._client = client or httpx.AsyncClient(timeout=10.0)

    @property
    def action_type(self) -> str:
        return "sms"

    async def execute(self, action: SmsAction, context: ExecutionContext) -> IntegrationResult:
        if not self._settings.sms_gateway_url:
            logger.warning("SMS gateway not configured")
            return IntegrationResult.fail("SMS gateway not configured")

        headers = {}
        if self._settings.sms_api_key:
            headers["Authorization"] = f"Bearer {self._settings.sms_api_key}"

        payload = {
            "to": action.to,
            "message": action.message,
            "sender": self._settings.sms_sender_id or None,
        }

        try:
            response = await self._client.post(
                self._settings.sms_gateway_url,
                json=payload,
                headers=headers,
            )
        except httpx.HTTPError as e:
            logger.error("SMS gateway request failed", to=action.to, error=str(e))
            raise IntegrationError(f"SMS gateway request failed: {e}") from e

        if not response.is_success:
            logger.warning("SMS gateway rejected message", status_code=response.status_code)
            return IntegrationResult.fail(
                f"SMS gateway returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        message_id = None
        if response.headers.get("content-type", "").startswith("application/json"):
            message_id = response.json().get("message_id")

        logger.info("SMS sent", to=action.to, message_id=message_id)
        return IntegrationResult.ok(
            {"to": action.to, "message": action.message, "message_id": message_id, "sent": True},
            status_code=response.status_code,
        )

    async def close(self) -> None:
        """Close HTTP client."""
        await self._client.aclose()
