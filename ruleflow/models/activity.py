"""Activity log models."""

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


class ActivityType(str, Enum):
    RULE_TRIGGERED = "rule_triggered"
    RULE_EVALUATED = "rule_evaluated"
    RULE_EXECUTION_FAILED = "rule_execution_failed"
    NOTIFICATION_SENT = "notification_sent"


class ActivityStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"


class ActivityEntry(BaseModel):
    """Human-readable summary of something the engine did."""

    id: str = Field(default_factory=lambda: f"activity_{uuid.uuid4().hex[:12]}")
    type: ActivityType
    message: str
    status: ActivityStatus = ActivityStatus.SUCCESS
    rule_id: str | None = None
    rule_name: str | None = None
    details: str = ""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
