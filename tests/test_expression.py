"""Tests for the expression evaluator."""

import pytest

from ruleflow.core.exceptions import EvaluationError
from ruleflow.engine.expression import evaluate_expression, get_expression_evaluator, tokenize


@pytest.mark.parametrize(
    ("expression", "expected"),
    [
        ("5 > 3", True),
        ('"premium" == "premium"', True),
        ("2 + 2 * 2", 6),
        ("(2 + 2) * 2", 8),
        ("10 / 4", 2.5),
        ("4 / 2", 2),
        ("7 % 3", 1),
        ("-7 % 3", -1),
        ("-3 + +1", -2),
        ("1500 >= 1500 && 2 < 3", True),
        ("1 > 2 || 2 > 1", True),
        ("1 > 2 or 2 > 1", True),
        ("true and not false", True),
        ("!true", False),
        ("null == null", True),
        ('"a" + 1', "a1"),
        ('"a" + true', "atrue"),
        ('"b" > "a"', True),
        ('"5" == 5', True),
        ('"5" === 5', False),
        ("5 === 5.0", True),
        ("1 !== 2", True),
        ('"it\\"s" == \'it"s\'', True),
        ("1.5e3 > 1000", True),
        ("0 || 7", 7),
        ('"" && 1', ""),
    ],
)
def test_evaluate(expression: str, expected) -> None:
    result = evaluate_expression(expression)

    assert result == expected
    assert type(result) is type(expected)


def test_logical_operators_short_circuit() -> None:
    # The right-hand side would raise a type error if evaluated
    assert evaluate_expression('false && ("a" - 1)') is False
    assert evaluate_expression('true || ("a" - 1)') is True


@pytest.mark.parametrize(
    "expression",
    [
        "1; rm -rf",
        "__import__('os')",
        "customer.tier == 'gold'",
        "open('x')",
        "x = 1",
        "1 +",
        "(1 + 2",
        "1 2",
        "",
        "'unterminated",
        "[1, 2]",
    ],
)
def test_malformed_or_unsafe_expressions_raise(expression: str) -> None:
    with pytest.raises(EvaluationError):
        evaluate_expression(expression)


@pytest.mark.parametrize(
    "expression",
    [
        "1 / 0",
        "5 % 0",
        '"a" - 1',
        "null + 1",
        '1 > "a"',
        '-"a"',
    ],
)
def test_runtime_errors_raise(expression: str) -> None:
    with pytest.raises(EvaluationError):
        evaluate_expression(expression)


def test_error_records_expression() -> None:
    with pytest.raises(EvaluationError) as exc_info:
        evaluate_expression("1 / 0")

    assert exc_info.value.expression == "1 / 0"
    assert exc_info.value.details["expression"] == "1 / 0"


def test_error_reports_position_of_unknown_identifier() -> None:
    with pytest.raises(EvaluationError) as exc_info:
        tokenize("1 > foo")

    assert exc_info.value.position == 4
    assert "foo" in exc_info.value.message


def test_deep_nesting_is_rejected() -> None:
    with pytest.raises(EvaluationError, match="nested too deeply"):
        evaluate_expression("(" * 200 + "1" + ")" * 200)


def test_validate() -> None:
    evaluator = get_expression_evaluator()

    assert evaluator.validate("1 + 2 > 2") == (True, None)
    valid, error = evaluator.validate("1 +")
    assert not valid
    assert "Unexpected end of expression" in error


@pytest.mark.parametrize(
    "expression",
    [
        f"{10**400} / 2 > 1",
        f"{10**400} % 3 == 1",
        f"{10**400} / 3 * 2",
    ],
)
def test_numeric_overflow_raises_evaluation_error(expression: str) -> None:
    with pytest.raises(EvaluationError, match="out of range"):
        evaluate_expression(expression)


def test_huge_integers_still_compare_exactly() -> None:
    assert evaluate_expression(f"{10**400} > {10**399}") is True
    assert evaluate_expression(f"{10**400} - {10**400} == 0") is True


def test_long_operator_chain_is_rejected() -> None:
    with pytest.raises(EvaluationError, match="nested too deeply"):
        evaluate_expression("+".join(["1"] * 1500) + " > 0")
    with pytest.raises(EvaluationError, match="nested too deeply"):
        evaluate_expression(" && ".join(["true"] * 500))


def test_operator_chain_within_limit_evaluates() -> None:
    assert evaluate_expression("+".join(["1"] * 200)) == 200


@pytest.mark.parametrize("expression", ["1 > é", "² > 1", "1 + ñ"])
def test_non_ascii_characters_raise_evaluation_error(expression: str) -> None:
    with pytest.raises(EvaluationError):
        tokenize(expression)
