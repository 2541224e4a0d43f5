"""Execution id propagation for log correlation."""

import uuid
from contextvars import ContextVar
from typing import Any

import structlog

_execution_id: ContextVar[str] = ContextVar("execution_id", default="")


def generate_execution_id() -> str:
    """Generate a new execution ID."""
    return f"exec_{uuid.uuid4().hex[:16]}"


def get_execution_id() -> str:
    """Get current execution ID, or an empty string outside a trace."""
    return _execution_id.get()


def set_execution_id(execution_id: str) -> None:
    """Set current execution ID and bind it to the structlog context."""
    _execution_id.set(execution_id)
    structlog.contextvars.bind_contextvars(execution_id=execution_id)


def clear_execution_id() -> None:
    """Clear current execution ID."""
    _execution_id.set("")
    structlog.contextvars.unbind_contextvars("execution_id")


class TraceContext:
    """Context manager that scopes an execution ID."""

    def __init__(self, execution_id: str | None = None):
        self._execution_id = execution_id or generate_execution_id()
        self._previous_id: str = ""

    def __enter__(self) -> str:
        self._previous_id = get_execution_id()
        set_execution_id(self._execution_id)
        return self._execution_id

    def __exit__(self, *args: Any) -> None:
        if self._previous_id:
            set_execution_id(self._previous_id)
        else:
            clear_execution_id()
