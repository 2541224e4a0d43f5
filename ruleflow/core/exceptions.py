"""Exception hierarchy for the rule engine."""

from typing import Any


class RuleFlowError(Exception):
    """Base exception for rule engine errors."""

    code = "RULEFLOW_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ParseError(RuleFlowError):
    """Rule DSL text is structurally invalid."""

    code = "PARSE_ERROR"

    def __init__(self, message: str, line: str | None = None, line_number: int | None = None):
        details: dict[str, Any] = {}
        if line is not None:
            details["line"] = line
        if line_number is not None:
            details["line_number"] = line_number
        super().__init__(message, details)
        self.line = line
        self.line_number = line_number


class EvaluationError(RuleFlowError):
    """Expression is malformed or uses an unsupported construct."""

    code = "EVALUATION_ERROR"

    def __init__(self, message: str, expression: str | None = None, position: int | None = None):
        details: dict[str, Any] = {}
        if expression is not None:
            details["expression"] = expression
        if position is not None:
            details["position"] = position
        super().__init__(message, details)
        self.expression = expression
        self.position = position


class ActionValidationError(RuleFlowError):
    """Action expression or configuration is invalid."""

    code = "ACTION_VALIDATION_ERROR"



class TriggerError(RuleFlowError):
    """Trigger payload is unsupported or invalid."""

    code = "TRIGGER_ERROR"


class IntegrationError(RuleFlowError):
    """External collaborator failed (transport error, timeout, rejected call)."""

    code = "INTEGRATION_ERROR"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.status_code = status_code
