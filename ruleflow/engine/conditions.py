"""Condition evaluation for parsed rules."""

from ruleflow.core.exceptions import EvaluationError
from ruleflow.core.logging import get_logger
from ruleflow.engine.dsl import Clause, ParsedRule
from ruleflow.engine.expression import get_expression_evaluator
from ruleflow.engine.interpolation import interpolate_variables
from ruleflow.models.context import ExecutionContext
from ruleflow.models.execution import ConditionResult

logger = get_logger(__name__)


class ConditionEvaluator:
    """Evaluates condition clauses against an execution context."""

    def evaluate_clause(self, clause: Clause, context: ExecutionContext) -> ConditionResult:
        """Interpolate and evaluate one clause.

        Evaluation errors never propagate: the clause is recorded as false
        with the error message attached.
        """
        evaluated = interpolate_variables(clause.expression, context)
        try:
            value = get_expression_evaluator().evaluate(evaluated)
        except EvaluationError as e:
            logger.warning(
                "Condition evaluation failed",
                expression=clause.expression,
                evaluated=evaluated,
                error=e.message,
            )
            return ConditionResult(
                expression=clause.expression,
                evaluated_expression=evaluated,
                result=False,
                error=e.message,
            )

        return ConditionResult(
            expression=clause.expression,
            evaluated_expression=evaluated,
            result=bool(value),
            value=value,
        )

    def evaluate(
        self,
        parsed: ParsedRule,
        context: ExecutionContext,
    ) -> tuple[bool, list[ConditionResult]]:
        """Evaluate every condition clause of a rule.

        Every clause is evaluated and recorded, including OR clauses. The
        overall outcome is the conjunction of all clause results.

        Returns:
            Tuple of (all_passed, per-clause results in declared order)
        """
        results = [self.evaluate_clause(clause, context) for clause in parsed.conditions]
        # TODO: give OR clauses disjunctive meaning once stored rules are migrated
        return all(r.result for r in results), results


# Singleton instance
_evaluator: ConditionEvaluator | None = None


def get_condition_evaluator() -> ConditionEvaluator:
    """Get condition evaluator singleton."""
    global _evaluator
    if _evaluator is None:
        _evaluator = ConditionEvaluator()
    return _evaluator


def evaluate_conditions(
    parsed: ParsedRule,
    context: ExecutionContext,
) -> tuple[bool, list[ConditionResult]]:
    """Evaluate rule conditions using the singleton evaluator."""
    return get_condition_evaluator().evaluate(parsed, context)
