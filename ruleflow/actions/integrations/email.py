"""Email action integration."""

from collections.abc import Awaitable, Callable
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any

import aiosmtplib

from ruleflow.actions.integrations.base import ActionIntegration, IntegrationResult
from ruleflow.core.config import Settings, get_settings
from ruleflow.core.exceptions import IntegrationError
from ruleflow.core.logging import get_logger
from ruleflow.engine.interpolation import render_template
from ruleflow.models.action import EmailAction
from ruleflow.models.context import ExecutionContext

logger = get_logger(__name__)

# Named templates selectable with template: "<name>"
EMAIL_TEMPLATES: dict[str, dict[str, str]] = {
    "high-value-order": {
        "text": "High value order alert: {{order.total}} from customer {{customer.name}}",
        "html": (
            "<h3>High Value Order Alert</h3>"
            "<p>Order Total: {{order.total}}</p>"
            "<p>Customer: {{customer.name}}</p>"
        ),
    },
    "inventory-low": {
        "text": "Low inventory alert for product {{product.name}}: {{product.inventory}} remaining",
        "html": (
            "<h3>Low Inventory Alert</h3>"
            "<p>Product: {{product.name}}</p>"
            "<p>Remaining: {{product.inventory}}</p>"
        ),
    },
}

Sender = Callable[..., Awaitable[Any]]


class EmailIntegration(ActionIntegration):
    """Email delivery over SMTP."""

    def __init__(self, settings: Settings | None = None, sender: Sender | None = None):
        """Initialize with settings.

        Args:
            settings: Settings override (defaults to process settings)
            sender: SMTP send coroutine, ``aiosmtplib.send`` unless overridden
        """
        self._settings = settings or get_settings()
        self._send = sender or aiosmtplib.send

    @property
    def action_type(self) -> str:
        return "email"

    def build_message(self, action: EmailAction, context: ExecutionContext) -> MIMEMultipart:
        """Compose the MIME message, applying a named template if given."""
        body = action.body
        html = action.html
        if action.template:
            template = EMAIL_TEMPLATES.get(action.template)
            if template:
                body = render_template(template["text"], context)
                html = render_template(template["html"], context)
            else:
                logger.warning("Unknown email template", template=action.template)

        msg = MIMEMultipart("alternative")
        msg["Subject"] = action.subject
        msg["From"] = self._settings.smtp_from or self._settings.smtp_user
        msg["To"] = ", ".join(action.to)
        if action.cc:
            msg["Cc"] = ", ".join(action.cc)

        msg.attach(MIMEText(body, "plain", "utf-8"))
        if html:
            msg.attach(MIMEText(html, "html", "utf-8"))
        return msg

    async def execute(self, action: EmailAction, context: ExecutionContext) -> IntegrationResult:
        if not self._settings.smtp_host:
            logger.warning("SMTP not configured")
            return IntegrationResult.fail("SMTP not configured")

        msg = self.build_message(action, context)
        recipients = [*action.to, *action.cc, *action.bcc]

        try:
            await self._send(
                msg,
                recipients=recipients,
                hostname=self._settings.smtp_host,
                port=self._settings.smtp_port,
                username=self._settings.smtp_user or None,
                password=self._settings.smtp_password or None,
                use_tls=not self._settings.smtp_use_tls,
                start_tls=self._settings.smtp_use_tls,
            )
        except aiosmtplib.SMTPException as e:
            logger.error("Email send failed", recipients=action.to, error=str(e))
            raise IntegrationError(f"Email send failed: {e}") from e

        logger.info("Email sent", recipients=action.to, subject=action.subject)
        return IntegrationResult.ok(
            {
                "to": ", ".join(action.to),
                "subject": action.subject,
                "template": action.template,
                "sent": True,
            }
        )
