"""Variable interpolation against an execution context."""

import json
import re
from collections.abc import Mapping
from typing import Any

from ruleflow.models.context import ExecutionContext

# {{template}} placeholders are matched first so their paths are left alone
_VARIABLE_PATTERN = re.compile(
    r"(\{\{[^{}]*\}\})|(?<![\w.])([A-Za-z_]\w*)((?:\.[A-Za-z_]\w*)+)"
)
_TEMPLATE_PATTERN = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")


def get_nested_value(obj: Any, path: str) -> Any:
    """Resolve a dot-delimited path; any missing segment yields ``None``."""
    current = obj
    for key in path.split("."):
        if isinstance(current, Mapping):
            current = current.get(key)
        elif isinstance(current, list) and key.isdigit():
            index = int(key)
            current = current[index] if index < len(current) else None
        else:
            return None
        if current is None:
            return None
    return current


def resolve_variable(object_name: str, path: str, context: ExecutionContext) -> Any:
    """Look up ``object_name.path`` using the context routing table."""
    root = context.resolve_object(object_name)
    if root is None:
        return None
    return get_nested_value(root, path)


def _to_literal(value: Any) -> str | None:
    """Render a primitive as expression source; ``None`` for anything else."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, str):
        return json.dumps(value)
    return None


def interpolate_variables(expression: str, context: ExecutionContext) -> str:
    """Substitute ``object.property`` references with literal values.

    Strings are inserted quoted, numbers and booleans as literals. References
    that do not resolve to a primitive are left untouched.

    Args:
        expression: Expression text with variable references
        context: Execution context

    Returns:
        Interpolated expression text
    """

    def replace(match: re.Match[str]) -> str:
        if match.group(1):
            return match.group(1)
        object_name, path = match.group(2), match.group(3)[1:]
        literal = _to_literal(resolve_variable(object_name, path, context))
        return literal if literal is not None else match.group(0)

    return _VARIABLE_PATTERN.sub(replace, expression)


def render_template(template: str, data: Mapping[str, Any] | ExecutionContext) -> str:
    """Replace ``{{path}}`` placeholders; unresolved placeholders are kept."""
    if not template:
        return template
    if isinstance(data, ExecutionContext):
        data = data.as_template_data()

    def replace(match: re.Match[str]) -> str:
        value = get_nested_value(data, match.group(1))
        return match.group(0) if value is None else str(value)

    return _TEMPLATE_PATTERN.sub(replace, template)


def render_object(obj: Any, data: Mapping[str, Any] | ExecutionContext) -> Any:
    """Apply ``render_template`` to every string inside a nested structure."""
    if isinstance(data, ExecutionContext):
        data = data.as_template_data()
    if isinstance(obj, str):
        return render_template(obj, data)
    if isinstance(obj, list):
        return [render_object(item, data) for item in obj]
    if isinstance(obj, dict):
        return {key: render_object(value, data) for key, value in obj.items()}
    return obj
