"""Action domain models.

An ``ActionConfig`` is the loose shape produced from a DSL action clause (or a
stored action record). Before dispatch it is validated into one member of the
closed ``TypedAction`` union, discriminated on ``type``.
"""

import json
import re
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)

from ruleflow.core.exceptions import ActionValidationError


class ActionType(str, Enum):
    """Supported action types."""

    EMAIL = "email"
    SMS = "sms"
    WEBHOOK = "webhook"
    DATABASE = "database"
    NOTIFICATION = "notification"


ACTION_TYPE_VALUES = frozenset(t.value for t in ActionType)

# DSL function name -> action type
ACTION_FUNCTIONS: dict[str, ActionType] = {
    "send_email": ActionType.EMAIL,
    "send_sms": ActionType.SMS,
    "call_webhook": ActionType.WEBHOOK,
    "update_database": ActionType.DATABASE,
    "send_notification": ActionType.NOTIFICATION,
}

E164_PATTERN = re.compile(r"^\+?[1-9]\d{1,14}$")
HTTP_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")


class ActionConfig(BaseModel):
    """Action invocation synthesized from a rule's action clause."""

    id: str = Field(..., description="Invocation identifier")
    type: str = Field(..., description="Action type, or the raw function name if unrecognized")
    config: dict[str, Any] = Field(default_factory=dict, description="Per-type parameters")
    source: str = Field(default="dsl", description="Where the config came from")
    action_ref: str | None = Field(
        default=None,
        description="Stored action record id, if the config references one",
    )

    def to_action(self) -> "TypedAction":
        """Validate into a typed action.

        Raises:
            ActionValidationError: If the type is unsupported or a required
                field is missing or malformed
        """
        if self.type not in ACTION_TYPE_VALUES:
            raise ActionValidationError(f"Unsupported action type: {self.type}")

        try:
            return _typed_action_adapter.validate_python({**self.config, "type": self.type})
        except ValidationError as e:
            raise ActionValidationError(
                f"Action config validation failed: {_describe_error(e)}",
                details={"errors": e.errors(include_url=False, include_context=False)},
            ) from e


def _json_object(value: Any) -> Any:
    """DSL parameters are strings; structured ones may be passed as JSON text."""
    if isinstance(value, str):
        if not value.strip():
            return None
        try:
            return json.loads(value)
        except ValueError:
            raise ValueError("must be a JSON object") from None
    return value


class _ActionBase(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)


class EmailAction(_ActionBase):
    type: Literal["email"] = "email"
    to: list[str] = Field(..., min_length=1)
    subject: str = Field(..., min_length=1)
    cc: list[str] = Field(default_factory=list)
    bcc: list[str] = Field(default_factory=list)
    body: str = ""
    html: str = ""
    template: str | None = None

    @field_validator("to", "cc", "bcc", mode="before")
    @classmethod
    def split_recipients(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value


class SmsAction(_ActionBase):
    type: Literal["sms"] = "sms"
    to: str = Field(..., pattern=E164_PATTERN.pattern)
    message: str = Field(..., min_length=1, max_length=1600)


class WebhookAction(_ActionBase):
    type: Literal["webhook"] = "webhook"
    url: str = Field(..., min_length=1)
    method: str = Field(...)
    headers: dict[str, str] = Field(default_factory=dict)
    body: str | dict[str, Any] | list[Any] | None = None
    timeout: int | None = Field(default=None, ge=1000, le=300000, description="Timeout in ms")

    @field_validator("headers", mode="before")
    @classmethod
    def parse_headers(cls, value: Any) -> Any:
        value = _json_object(value)
        return {} if value is None else value

    @field_validator("url")
    @classmethod
    def check_url(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError("url must start with http:// or https://")
        return value

    @field_validator("method")
    @classmethod
    def check_method(cls, value: str) -> str:
        method = value.upper()
        if method not in HTTP_METHODS:
            raise ValueError(f"method must be one of {', '.join(HTTP_METHODS)}")
        return method


class DatabaseAction(_ActionBase):
    """Data-store write; unknown keys are treated as record fields."""

    model_config = ConfigDict(extra="allow", str_strip_whitespace=True)

    type: Literal["database"] = "database"
    collection: str = Field(..., min_length=1)
    operation: Literal["create", "insert", "update", "delete", "find", "query"]
    filter: dict[str, Any] | None = None
    update: dict[str, Any] | None = None
    data: dict[str, Any] | None = None

    @model_validator(mode="before")
    @classmethod
    def table_alias(cls, values: Any) -> Any:
        if isinstance(values, dict) and "collection" not in values and "table" in values:
            values = dict(values)
            values["collection"] = values.pop("table")
        return values

    @field_validator("filter", "update", "data", mode="before")
    @classmethod
    def parse_json(cls, value: Any) -> Any:
        return _json_object(value)

    @property
    def fields(self) -> dict[str, Any]:
        """Flat key/value parameters from a DSL clause."""
        return dict(self.model_extra or {})


class NotificationAction(_ActionBase):
    type: Literal["notification"] = "notification"
    message: str = Field(..., min_length=1)
    subject: str = ""
    topic: str | None = None
    target: Literal["pubsub", "activity", "telegram"] | None = None
    chat_id: str | None = None


TypedAction = Annotated[
    Union[EmailAction, SmsAction, WebhookAction, DatabaseAction, NotificationAction],
    Field(discriminator="type"),
]

_typed_action_adapter: TypeAdapter[TypedAction] = TypeAdapter(TypedAction)


def _describe_error(error: ValidationError) -> str:
    first = error.errors()[0]
    # Drop the union tag from the location
    loc = [str(part) for part in first["loc"] if str(part) not in ACTION_TYPE_VALUES]
    field = ".".join(loc)
    return f"{field}: {first['msg']}" if field else first["msg"]


class ActionResult(BaseModel):
    """Outcome of one action invocation."""

    action_id: str
    action_type: str
    success: bool
    execution_time: int = Field(default=0, ge=0, description="Execution time in milliseconds")
    data: dict[str, Any] | None = None
    error: str | None = None
    status_code: int | None = None
