"""Execution context model."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class TriggerType(str, Enum):
    """What started a rule execution batch."""

    SCHEDULED = "scheduled"
    API = "api"
    CUSTOM = "custom"
    MANUAL = "manual"


# Variable prefix -> context attribute
OBJECT_ROUTES: dict[str, str] = {
    "customer": "customer",
    "order": "order",
    "product": "product",
    "event": "event_data",
}


class ExecutionContext(BaseModel):
    """Runtime data that conditions and action parameters resolve against.

    Extra top-level objects (e.g. ``store``, ``inventory``) are accepted and
    addressable by their key.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    trigger_type: TriggerType = Field(default=TriggerType.MANUAL)
    event_type: str = Field(default="", description="Event type that caused the trigger")
    event_data: dict[str, Any] = Field(default_factory=dict)
    customer: dict[str, Any] | None = None
    order: dict[str, Any] | None = None
    product: dict[str, Any] | None = None

    def resolve_object(self, name: str) -> Any:
        """Return the top-level object a variable prefix refers to."""
        attr = OBJECT_ROUTES.get(name)
        if attr is not None:
            return getattr(self, attr)
        if name in type(self).model_fields:
            return getattr(self, name)
        return (self.model_extra or {}).get(name)

    def as_template_data(self) -> dict[str, Any]:
        """Flatten into a plain mapping for ``{{path}}`` templates."""
        data: dict[str, Any] = {
            "trigger_type": self.trigger_type.value,
            "event_type": self.event_type,
            "event": self.event_data,
            "event_data": self.event_data,
            "customer": self.customer or {},
            "order": self.order or {},
            "product": self.product or {},
        }
        data.update(self.model_extra or {})
        return data
