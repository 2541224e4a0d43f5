"""Safe expression evaluation for rule conditions.

Conditions are interpolated into literal-only expressions before they reach
this module (see ``ruleflow.engine.interpolation``), so the grammar is closed:
numbers, strings, ``true``/``false``/``null``, parentheses, arithmetic,
comparison and logical operators. Anything else is rejected with
``EvaluationError``; nothing is handed to the Python interpreter.

Grammar (lowest to highest precedence)::

    expr           := or
    or             := and (("||" | "or") and)*
    and            := equality (("&&" | "and") equality)*
    equality       := relational (("==" | "!=" | "===" | "!==") relational)?
    relational     := additive ((">" | "<" | ">=" | "<=") additive)?
    additive       := multiplicative (("+" | "-") multiplicative)*
    multiplicative := unary (("*" | "/" | "%") unary)*
    unary          := ("!" | "not" | "-" | "+") unary | primary
    primary        := NUMBER | STRING | "true" | "false" | "null" | "(" expr ")"
"""

import math
import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any

from ruleflow.core.exceptions import EvaluationError
from ruleflow.core.logging import get_logger

logger = get_logger(__name__)

MAX_EXPRESSION_LENGTH = 4096
MAX_NESTING_DEPTH = 64
# Height of the parsed tree; evaluation recurses once per level
MAX_TREE_HEIGHT = 256


# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------

NUMBER = "NUMBER"
STRING = "STRING"
OP = "OP"
KEYWORD = "KEYWORD"
EOF = "EOF"

KEYWORDS = frozenset({"true", "false", "null", "and", "or", "not"})

# Longest operators first
OPERATORS = (
    "===", "!==",
    "==", "!=", ">=", "<=", "&&", "||",
    ">", "<", "+", "-", "*", "/", "%", "!", "(", ")",
)

_NUMBER_RE = re.compile(r"(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_IDENT_RE = re.compile(r"[A-Za-z_]\w*")
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", '"': '"', "'": "'", "/": "/"}


@dataclass(frozen=True)
class Token:
    kind: str
    value: Any
    position: int


def tokenize(expression: str) -> list[Token]:
    """Split an expression into tokens.

    Raises:
        EvaluationError: On any character or word outside the grammar
    """
    tokens: list[Token] = []
    pos = 0
    length = len(expression)

    while pos < length:
        char = expression[pos]

        if char.isspace():
            pos += 1
            continue

        if char.isdigit() or (char == "." and pos + 1 < length and expression[pos + 1].isdigit()):
            match = _NUMBER_RE.match(expression, pos)
            if match is None:
                raise EvaluationError(
                    f"Invalid number at position {pos}",
                    expression=expression,
                    position=pos,
                )
            text = match.group(0)
            value: Any = float(text) if any(c in text for c in ".eE") else int(text)
            tokens.append(Token(NUMBER, value, pos))
            pos = match.end()
            continue

        if char in ('"', "'"):
            value, end = _read_string(expression, pos)
            tokens.append(Token(STRING, value, pos))
            pos = end
            continue

        if char.isalpha() or char == "_":
            match = _IDENT_RE.match(expression, pos)
            if match is None:
                raise EvaluationError(
                    f"Unexpected character '{char}' at position {pos}",
                    expression=expression,
                    position=pos,
                )
            word = match.group(0)
            if word not in KEYWORDS:
                raise EvaluationError(
                    f"Unsupported identifier '{word}' at position {pos}",
                    expression=expression,
                    position=pos,
                )
            tokens.append(Token(KEYWORD, word, pos))
            pos = match.end()
            continue

        for op in OPERATORS:
            if expression.startswith(op, pos):
                tokens.append(Token(OP, op, pos))
                pos += len(op)
                break
        else:
            raise EvaluationError(
                f"Unexpected character '{char}' at position {pos}",
                expression=expression,
                position=pos,
            )

    tokens.append(Token(EOF, None, length))
    return tokens


def _read_string(expression: str, start: int) -> tuple[str, int]:
    quote = expression[start]
    chars: list[str] = []
    pos = start + 1
    while pos < len(expression):
        char = expression[pos]
        if char == "\\":
            if pos + 1 >= len(expression):
                break
            escaped = expression[pos + 1]
            if escaped == "u":
                hex_digits = expression[pos + 2:pos + 6]
                try:
                    if len(hex_digits) != 4:
                        raise ValueError(hex_digits)
                    chars.append(chr(int(hex_digits, 16)))
                except ValueError:
                    raise EvaluationError(
                        f"Invalid unicode escape at position {pos}",
                        expression=expression,
                        position=pos,
                    ) from None
                pos += 6
                continue
            chars.append(_ESCAPES.get(escaped, escaped))
            pos += 2
            continue
        if char == quote:
            return "".join(chars), pos + 1
        chars.append(char)
        pos += 1
    raise EvaluationError(
        f"Unterminated string starting at position {start}",
        expression=expression,
        position=start,
    )


# ---------------------------------------------------------------------------
# AST
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Literal:
    value: Any


@dataclass(frozen=True)
class Unary:
    op: str
    operand: "Node"
    height: int = field(default=1, compare=False, repr=False)


@dataclass(frozen=True)
class Binary:
    op: str
    left: "Node"
    right: "Node"
    height: int = field(default=1, compare=False, repr=False)


@dataclass(frozen=True)
class Logical:
    op: str  # "&&" or "||"
    left: "Node"
    right: "Node"
    height: int = field(default=1, compare=False, repr=False)


Node = Literal | Unary | Binary | Logical


def _height(node: Node) -> int:
    return 0 if isinstance(node, Literal) else node.height


class _Parser:
    """Recursive-descent parser producing an AST."""

    def __init__(self, expression: str):
        self._expression = expression
        self._tokens = tokenize(expression)
        self._index = 0
        self._depth = 0

    def parse(self) -> Node:
        if self._peek().kind == EOF:
            raise EvaluationError("Empty expression", expression=self._expression)
        node = self._or()
        token = self._peek()
        if token.kind != EOF:
            raise self._error(f"Unexpected token '{token.value}'", token)
        return node

    # -- helpers ----------------------------------------------------------

    def _peek(self) -> Token:
        return self._tokens[self._index]

    def _advance(self) -> Token:
        token = self._tokens[self._index]
        self._index += 1
        return token

    def _match(self, *ops: str) -> str | None:
        token = self._peek()
        if token.kind in (OP, KEYWORD) and token.value in ops:
            self._advance()
            return token.value
        return None

    def _error(self, message: str, token: Token) -> EvaluationError:
        return EvaluationError(
            f"{message} at position {token.position}",
            expression=self._expression,
            position=token.position,
        )

    # -- grammar ----------------------------------------------------------

    def _or(self) -> Node:
        node = self._and()
        while self._match("||", "or"):
            node = self._node(Logical, "||", node, self._and())
        return node

    def _and(self) -> Node:
        node = self._equality()
        while self._match("&&", "and"):
            node = self._node(Logical, "&&", node, self._equality())
        return node

    def _equality(self) -> Node:
        node = self._relational()
        op = self._match("===", "!==", "==", "!=")
        if op:
            node = self._node(Binary, op, node, self._relational())
        return node

    def _relational(self) -> Node:
        node = self._additive()
        op = self._match(">=", "<=", ">", "<")
        if op:
            node = self._node(Binary, op, node, self._additive())
        return node

    def _additive(self) -> Node:
        node = self._multiplicative()
        while op := self._match("+", "-"):
            node = self._node(Binary, op, node, self._multiplicative())
        return node

    def _multiplicative(self) -> Node:
        node = self._unary()
        while op := self._match("*", "/", "%"):
            node = self._node(Binary, op, node, self._unary())
        return node

    def _unary(self) -> Node:
        op = self._match("!", "not", "-", "+")
        if op:
            self._enter()
            try:
                operand = self._unary()
                return Unary("!" if op == "not" else op, operand, self._check_height(_height(operand) + 1))
            finally:
                self._depth -= 1
        return self._primary()

    def _primary(self) -> Node:
        token = self._advance()

        if token.kind in (NUMBER, STRING):
            return Literal(token.value)

        if token.kind == KEYWORD and token.value in ("true", "false", "null"):
            return Literal({"true": True, "false": False, "null": None}[token.value])

        if token.kind == OP and token.value == "(":
            self._enter()
            try:
                node = self._or()
            finally:
                self._depth -= 1
            closing = self._advance()
            if not (closing.kind == OP and closing.value == ")"):
                raise self._error("Expected ')'", closing)
            return node

        if token.kind == EOF:
            raise self._error("Unexpected end of expression", token)
        raise self._error(f"Unexpected token '{token.value}'", token)

    def _enter(self) -> None:
        self._depth += 1
        if self._depth > MAX_NESTING_DEPTH:
            raise EvaluationError("Expression nested too deeply", expression=self._expression)

    def _node(self, cls: type, op: str, left: Node, right: Node) -> Node:
        return cls(op, left, right, self._check_height(max(_height(left), _height(right)) + 1))

    def _check_height(self, height: int) -> int:
        if height > MAX_TREE_HEIGHT:
            raise EvaluationError("Expression nested too deeply", expression=self._expression)
        return height


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _to_text(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if _is_number(value):
        return "number"
    return "string"


def _normalize(value: Any) -> Any:
    """Collapse integral floats so ``4 / 2`` evaluates to ``2``."""
    if isinstance(value, float):
        if not math.isfinite(value):
            raise EvaluationError("Arithmetic result is not a finite number")
        if value.is_integer() and abs(value) < 2**53:
            return int(value)
    return value


def _arithmetic(op: str, left: Any, right: Any) -> Any:
    try:
        return _apply_arithmetic(op, left, right)
    except (OverflowError, ValueError) as e:
        # Huge integers overflow float division and fmod, or exceed the int-to-str digit limit
        raise EvaluationError(f"Numeric result out of range for {op}") from e


def _apply_arithmetic(op: str, left: Any, right: Any) -> Any:
    if op == "+":
        if isinstance(left, str) or isinstance(right, str):
            return _to_text(left) + _to_text(right)
        if _is_number(left) and _is_number(right):
            return _normalize(left + right)
    elif _is_number(left) and _is_number(right):
        if op == "-":
            return _normalize(left - right)
        if op == "*":
            return _normalize(left * right)
        if right == 0:
            raise EvaluationError("Division by zero")
        if op == "/":
            return _normalize(left / right)
        if op == "%":
            # Result takes the sign of the dividend
            return _normalize(math.fmod(left, right))
    raise EvaluationError(
        f"Unsupported operand types for {op}: {_type_name(left)} and {_type_name(right)}"
    )


def _loose_equals(left: Any, right: Any) -> bool:
    """Equality with number/string coercion (``"5" == 5``)."""
    if _type_name(left) == _type_name(right):
        return left == right
    if left is None or right is None:
        return False
    if isinstance(left, str) and _is_number(right):
        left, right = right, left
    if _is_number(left) and isinstance(right, str):
        try:
            return left == float(right.strip())
        except ValueError:
            return False
    return False


def _compare(op: str, left: Any, right: Any) -> bool:
    if op in ("==", "!="):
        equal = _loose_equals(left, right)
        return equal if op == "==" else not equal
    if op in ("===", "!=="):
        equal = _type_name(left) == _type_name(right) and left == right
        return equal if op == "===" else not equal

    if not (
        (_is_number(left) and _is_number(right))
        or (isinstance(left, str) and isinstance(right, str))
    ):
        raise EvaluationError(
            f"Cannot compare {_type_name(left)} with {_type_name(right)} using {op}"
        )
    if op == ">":
        return left > right
    if op == "<":
        return left < right
    if op == ">=":
        return left >= right
    return left <= right


def _evaluate(node: Node) -> Any:
    if isinstance(node, Literal):
        return node.value

    if isinstance(node, Logical):
        left = _evaluate(node.left)
        if node.op == "&&":
            return _evaluate(node.right) if left else left
        return left if left else _evaluate(node.right)

    if isinstance(node, Unary):
        operand = _evaluate(node.operand)
        if node.op == "!":
            return not operand
        if not _is_number(operand):
            raise EvaluationError(f"Unary {node.op} requires a number, got {_type_name(operand)}")
        return -operand if node.op == "-" else operand

    if node.op in ("+", "-", "*", "/", "%"):
        return _arithmetic(node.op, _evaluate(node.left), _evaluate(node.right))
    return _compare(node.op, _evaluate(node.left), _evaluate(node.right))


@lru_cache(maxsize=1024)
def compile_expression(expression: str) -> Node:
    """Parse an expression into an AST.

    Raises:
        EvaluationError: If the expression is malformed or unsupported
    """
    if len(expression) > MAX_EXPRESSION_LENGTH:
        raise EvaluationError(
            f"Expression exceeds {MAX_EXPRESSION_LENGTH} characters",
            expression=expression[:100],
        )
    return _Parser(expression).parse()


class ExpressionEvaluator:
    """Evaluator for literal-only arithmetic/comparison/logical expressions."""

    def evaluate(self, expression: str) -> Any:
        """Evaluate an interpolated expression.

        Args:
            expression: Expression string (e.g., ``1500 > 1000``)

        Returns:
            Evaluated value (number, string, boolean or ``None``)

        Raises:
            EvaluationError: If the expression is invalid
        """
        try:
            return _evaluate(compile_expression(expression))
        except EvaluationError as e:
            if e.expression is None:
                e.expression = expression
                e.details["expression"] = expression
            logger.debug("Expression evaluation error", expression=expression, error=e.message)
            raise

    def validate(self, expression: str) -> tuple[bool, str | None]:
        """Validate expression syntax without evaluating it.

        Returns:
            Tuple of (is_valid, error_message)
        """
        try:
            compile_expression(expression)
            return True, None
        except EvaluationError as e:
            return False, e.message


# Singleton instance
_evaluator: ExpressionEvaluator | None = None


def get_expression_evaluator() -> ExpressionEvaluator:
    """Get expression evaluator singleton."""
    global _evaluator
    if _evaluator is None:
        _evaluator = ExpressionEvaluator()
    return _evaluator


def evaluate_expression(expression: str) -> Any:
    """Evaluate expression using the singleton evaluator."""
    return get_expression_evaluator().evaluate(expression)
