"""Webhook action integration."""

import json
from typing import Any

import httpx

from ruleflow.actions.integrations.base import ActionIntegration, IntegrationResult
from ruleflow.core.config import Settings, get_settings
from ruleflow.core.exceptions import IntegrationError
from ruleflow.core.logging import get_logger
from ruleflow.models.action import WebhookAction
from ruleflow.models.context import ExecutionContext

logger = get_logger(__name__)


def _decode_body(body: Any) -> Any:
    """String bodies are sent as JSON when they parse, raw otherwise."""
    if isinstance(body, str):
        try:
            return json.loads(body)
        except ValueError:
            return body
    return body


class WebhookIntegration(ActionIntegration):
    """Outbound HTTP call."""

    def __init__(self, settings: Settings | None = None, client: httpx.AsyncClient | None = None):
        self._settings = settings or get_settings()
        self._client = client or httpx.AsyncClient()

    @property
    def action_type(self) -> str:
        return "webhook"

    def timeout_seconds(self, action: WebhookAction) -> float:
        """Per-call timeout; the configured default applies when unset."""
        timeout_ms = action.timeout or self._settings.webhook_default_timeout_ms
        return timeout_ms / 1000

    async def execute(self, action: WebhookAction, context: ExecutionContext) -> IntegrationResult:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": self._settings.webhook_user_agent,
            **action.headers,
        }
        body = _decode_body(action.body)
        request_kwargs: dict[str, Any] = {}
        if body is not None:
            if isinstance(body, str):
                request_kwargs["content"] = body
            else:
                request_kwargs["json"] = body

        try:
            response = await self._client.request(
                action.method,
                action.url,
                headers=headers,
                timeout=self.timeout_seconds(action),
                **request_kwargs,
            )
        except httpx.TimeoutException as e:
            logger.warning("Webhook timed out", url=action.url, method=action.method)
            raise IntegrationError(f"Webhook timed out after {self.timeout_seconds(action)}s") from e
        except httpx.HTTPError as e:
            logger.error("Webhook request failed", url=action.url, error=str(e))
            raise IntegrationError(f"Webhook request failed: {e}") from e

        try:
            response_data: Any = response.json()
        except ValueError:
            response_data = response.text

        data = {
            "url": action.url,
            "method": action.method,
            "status_code": response.status_code,
            "response_data": response_data,
        }

        if not response.is_success:
            logger.warning(
                "Webhook returned non-success status",
                url=action.url,
                status_code=response.status_code,
            )
            return IntegrationResult.fail(
                f"Webhook returned HTTP {response.status_code}",
                status_code=response.status_code,
                data=data,
            )

        logger.info("Webhook called", url=action.url, status_code=response.status_code)
        return IntegrationResult.ok(data, status_code=response.status_code)

    async def close(self) -> None:
        """Close HTTP client."""
        await self._client.aclose()
