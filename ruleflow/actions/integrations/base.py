"""Base class for action integrations."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from ruleflow.models.context import ExecutionContext


@dataclass
class IntegrationResult:
    """Outcome reported by an integration."""

    success: bool
    data: dict[str, Any] | None = None
    error: str | None = None
    status_code: int | None = None

    @classmethod
    def ok(cls, data: dict[str, Any], status_code: int | None = None) -> "IntegrationResult":
        return cls(success=True, data=data, status_code=status_code)

    @classmethod
    def fail(
        cls,
        error: str,
        status_code: int | None = None,
        data: dict[str, Any] | None = None,
    ) -> "IntegrationResult":
        return cls(success=False, error=error, status_code=status_code, data=data)


class ActionIntegration(ABC):
    """Abstract base class for action integrations."""

    @property
    @abstractmethod
    def action_type(self) -> str:
        """Return the action type this integration handles."""
        pass

    @abstractmethod
    async def execute(self, action: Any, context: ExecutionContext) -> IntegrationResult:
        """Perform the action.

        Args:
            action: Validated typed action for this integration's type
            context: Execution context

        Returns:
            Integration result

        Raises:
            IntegrationError: If the collaborator cannot be reached or fails
        """
        pass

    async def close(self) -> None:
        """Clean up resources. Override if needed."""
        pass
