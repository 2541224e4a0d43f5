"""Action clause parsing.

Turns ``send_email(to: "ops@example.com", subject: "Order {{order.id}}")``
into an ``ActionConfig`` ready for the dispatcher.
"""

import json
import re
import secrets
import time

from ruleflow.core.exceptions import ActionValidationError
from ruleflow.core.logging import get_logger
from ruleflow.engine.interpolation import interpolate_variables
from ruleflow.models.action import ACTION_FUNCTIONS, ActionConfig
from ruleflow.models.context import ExecutionContext

logger = get_logger(__name__)

_CALL_PATTERN = re.compile(r"^(\w+)\s*\((.*)\)$", re.DOTALL)
_KEY_PATTERN = re.compile(r"[A-Za-z_]\w*")

# Parameter that links the invocation to a stored action record
ACTION_REF_PARAM = "action_ref"


def parse_parameters(params: str) -> dict[str, str]:
    """Tokenize a ``key: "value", ...`` parameter list.

    Values must be double- or single-quoted; backslash escapes the next
    character.

    Raises:
        ActionValidationError: On any deviation from the format
    """
    result: dict[str, str] = {}
    pos = 0
    length = len(params)

    def skip_spaces() -> None:
        nonlocal pos
        while pos < length and params[pos].isspace():
            pos += 1

    skip_spaces()
    if pos == length:
        return result

    while True:
        skip_spaces()
        key_match = _KEY_PATTERN.match(params, pos)
        if not key_match:
            raise ActionValidationError(
                f"Expected parameter name at position {pos}",
                details={"params": params},
            )
        key = key_match.group(0)
        pos = key_match.end()

        skip_spaces()
        if pos >= length or params[pos] != ":":
            raise ActionValidationError(
                f"Expected ':' after parameter '{key}'",
                details={"params": params},
            )
        pos += 1

        skip_spaces()
        if pos >= length or params[pos] not in ('"', "'"):
            raise ActionValidationError(
                f"Value for parameter '{key}' must be a quoted string",
                details={"params": params},
            )
        quote = params[pos]
        pos += 1
        chars: list[str] = []
        while pos < length and params[pos] != quote:
            if params[pos] == "\\" and pos + 1 < length:
                pos += 1
            chars.append(params[pos])
            pos += 1
        if pos >= length:
            raise ActionValidationError(
                f"Unterminated value for parameter '{key}'",
                details={"params": params},
            )
        pos += 1

        if key in result:
            raise ActionValidationError(
                f"Duplicate parameter '{key}'",
                details={"params": params},
            )
        result[key] = "".join(chars)

        skip_spaces()
        if pos == length:
            return result
        if params[pos] != ",":
            raise ActionValidationError(
                f"Expected ',' between parameters at position {pos}",
                details={"params": params},
            )
        pos += 1


def _unquote(value: str) -> str:
    """Turn a value that interpolated to a single string literal back into text."""
    if len(value) < 2 or not value[0] == value[-1] == '"':
        return value
    try:
        return json.loads(value)
    except ValueError:
        return value[1:-1]


def _invocation_id(function_name: str) -> str:
    return f"{function_name}_{int(time.time() * 1000)}_{secrets.token_hex(3)}"


def parse_action_expression(expression: str, context: ExecutionContext) -> ActionConfig | None:
    """Parse an action clause into an action config.

    Args:
        expression: Action clause text (without the THEN/AND keyword)
        context: Execution context used to interpolate parameter values

    Returns:
        Action config, or ``None`` if the text is not call syntax

    Raises:
        ActionValidationError: If the parameter list is malformed
    """
    match = _CALL_PATTERN.match(expression.strip())
    if not match:
        logger.warning("Unable to parse action expression", expression=expression)
        return None

    function_name, params_text = match.groups()
    params = parse_parameters(params_text)

    config: dict[str, str] = {}
    for key, value in params.items():
        config[key] = _unquote(interpolate_variables(value, context))

    action_ref = config.pop(ACTION_REF_PARAM, None)
    action_type = ACTION_FUNCTIONS.get(function_name)

    return ActionConfig(
        id=_invocation_id(function_name),
        type=action_type.value if action_type else function_name,
        config=config,
        source="dsl",
        action_ref=action_ref,
    )
