"""Parser for the line-oriented rule DSL.

A rule reads top to bottom::

    WHEN order.total > 1000
    AND customer.tier == "premium"
    THEN send_email(to: "sales@example.com", subject: "Big order")
    AND send_notification(message: "Order {{order.id}} flagged")

Lines before the first ``THEN`` are conditions (``WHEN``/``AND``/``OR``);
``THEN`` and every ``AND`` after it are actions.
"""

from dataclasses import dataclass
from enum import Enum
from functools import lru_cache

from ruleflow.core.exceptions import ParseError


class ClauseType(str, Enum):
    WHEN = "WHEN"
    AND = "AND"
    OR = "OR"
    THEN = "THEN"


@dataclass(frozen=True)
class Clause:
    """A single DSL line: keyword plus raw expression text."""

    type: ClauseType
    expression: str

    def to_line(self) -> str:
        return f"{self.type.value} {self.expression}"


@dataclass(frozen=True)
class ParsedRule:
    """Ordered condition and action clauses of a rule."""

    conditions: tuple[Clause, ...]
    actions: tuple[Clause, ...]

    @property
    def when(self) -> Clause:
        return self.conditions[0]

    def to_dsl(self) -> str:
        """Serialize back to DSL text, one clause per line."""
        return "\n".join(clause.to_line() for clause in (*self.conditions, *self.actions))


_PREFIXES: tuple[tuple[str, ClauseType], ...] = (
    ("WHEN ", ClauseType.WHEN),
    ("AND ", ClauseType.AND),
    ("OR ", ClauseType.OR),
    ("THEN ", ClauseType.THEN),
)


def _classify(line: str, line_number: int) -> Clause:
    for prefix, clause_type in _PREFIXES:
        if line.startswith(prefix):
            expression = line[len(prefix):].strip()
            if not expression:
                raise ParseError(
                    f"{clause_type.value} clause has no expression",
                    line=line,
                    line_number=line_number,
                )
            return Clause(clause_type, expression)
    raise ParseError(f"Invalid DSL line: {line}", line=line, line_number=line_number)


def parse_dsl(text: str) -> ParsedRule:
    """Parse rule DSL text.

    Args:
        text: Rule source

    Returns:
        Parsed rule with conditions and actions in declared order

    Raises:
        ParseError: If the text is empty or violates the clause grammar
    """
    if not text or not text.strip():
        raise ParseError("DSL cannot be empty")

    conditions: list[Clause] = []
    actions: list[Clause] = []
    parsing_conditions = True

    for line_number, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line:
            continue

        clause = _classify(line, line_number)

        if clause.type == ClauseType.WHEN:
            if conditions or not parsing_conditions:
                raise ParseError("multiple WHEN clauses", line=line, line_number=line_number)
            conditions.append(clause)

        elif clause.type == ClauseType.THEN:
            if not conditions:
                raise ParseError(
                    "THEN clause must come after WHEN clause",
                    line=line,
                    line_number=line_number,
                )
            parsing_conditions = False
            actions.append(clause)

        elif clause.type == ClauseType.OR and not parsing_conditions:
            raise ParseError(
                "OR clauses can only be used in conditions",
                line=line,
                line_number=line_number,
            )

        elif parsing_conditions:
            if not conditions:
                raise ParseError(
                    f"{clause.type.value} clause must come after WHEN clause",
                    line=line,
                    line_number=line_number,
                )
            conditions.append(clause)

        else:
            actions.append(clause)

    if not conditions:
        raise ParseError("DSL must have a WHEN clause")
    if not actions:
        raise ParseError("DSL must have at least one THEN clause")

    return ParsedRule(conditions=tuple(conditions), actions=tuple(actions))


@lru_cache(maxsize=512)
def parse_dsl_cached(text: str) -> ParsedRule:
    """Parse with memoization; ``ParsedRule`` is immutable so sharing is safe."""
    return parse_dsl(text)


def validate_dsl(text: str) -> tuple[bool, list[str]]:
    """Validate DSL syntax.

    Returns:
        Tuple of (is_valid, errors)
    """
    try:
        parse_dsl(text)
    except ParseError as e:
        if e.line_number is not None:
            return False, [f"line {e.line_number}: {e.message}"]
        return False, [e.message]
    return True, []
