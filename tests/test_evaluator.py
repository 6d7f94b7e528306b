"""Tests for the arithmetic evaluator, result formatting and the full pipeline."""

from __future__ import annotations

import math

import pytest

from scicalc.terminal.constants import CONSTANTS
from scicalc.terminal.errors import DomainError, EvaluationError
from scicalc.terminal.evaluator import (
    evaluate,
    evaluate_arithmetic,
    format_result,
    power,
    tokenize,
)


# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------


class TestTokenize:
    def test_kinds(self):
        tokens = tokenize("math.sqrt(2.5e3) ** 2")
        assert [t.kind for t in tokens] == ["name", "op", "number", "op", "op", "number", "end"]
        assert tokens[0].text == "math.sqrt"
        assert tokens[2].text == "2.5e3"

    def test_unexpected_character(self):
        with pytest.raises(EvaluationError, match="Unexpected character"):
            tokenize("2 $ 3")


# ---------------------------------------------------------------------------
# Arithmetic
# ---------------------------------------------------------------------------


class TestEvaluateArithmetic:
    def test_precedence(self):
        assert evaluate_arithmetic("2 + 3 * 4") == 14

    def test_power_is_right_associative(self):
        assert evaluate_arithmetic("2**3**2") == 512

    def test_unary_minus_binds_looser_than_power(self):
        assert evaluate_arithmetic("-2**2") == -4
        assert evaluate_arithmetic("(-2)**2") == 4

    def test_negative_exponent(self):
        assert evaluate_arithmetic("2**-1") == 0.5

    def test_function_arity(self):
        with pytest.raises(EvaluationError, match="takes 2 arguments"):
            evaluate_arithmetic("math.pow(2)")

    def test_unknown_identifier(self):
        with pytest.raises(EvaluationError, match="Unknown identifier: foo"):
            evaluate_arithmetic("foo + 1")

    def test_function_without_call(self):
        with pytest.raises(EvaluationError, match="parentheses"):
            evaluate_arithmetic("math.sin + 1")

    def test_empty(self):
        with pytest.raises(EvaluationError, match="empty"):
            evaluate_arithmetic("   ")

    def test_trailing_operator(self):
        with pytest.raises(EvaluationError, match="Unexpected end"):
            evaluate_arithmetic("2 +")

    def test_unbalanced_parenthesis(self):
        with pytest.raises(EvaluationError, match=r"Expected '\)'"):
            evaluate_arithmetic("(2 + 3")

    def test_python_code_is_rejected(self):
        with pytest.raises(EvaluationError):
            evaluate_arithmetic("__import__('os')")

    def test_deep_nesting_is_an_evaluation_error(self):
        with pytest.raises(EvaluationError, match="nested too deeply"):
            evaluate_arithmetic("(" * 5000 + "1" + ")" * 5000)


class TestDomainErrors:
    def test_division_by_zero(self):
        with pytest.raises(DomainError, match="Division by zero"):
            evaluate_arithmetic("1/0")

    @pytest.mark.parametrize(
        "text",
        ["math.sqrt(-1)", "math.log10(0)", "math.log(-1)", "(-8)**(1/3)", "0**-1"],
    )
    def test_undefined_inputs(self, text):
        with pytest.raises(DomainError):
            evaluate_arithmetic(text)

    def test_domain_error_is_an_evaluation_error(self):
        assert issubclass(DomainError, EvaluationError)


class TestPower:
    def test_overflow_to_inf(self):
        assert power(10, 400) == math.inf

    def test_negative_base_odd_exponent_overflow(self):
        assert power(-10, 401) == -math.inf

    def test_negative_base_integer_exponent(self):
        assert power(-2, 3) == -8


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


class TestFormatResult:
    def test_nan(self):
        assert format_result(float("nan")) == "Error"

    def test_infinities(self):
        assert format_result(math.inf) == "Infinity"
        assert format_result(-math.inf) == "Infinity"

    def test_float_noise_removed(self):
        assert format_result(0.1 + 0.2) == "0.3"

    def test_integers_without_decimal_point(self):
        assert format_result(1024.0) == "1024"
        assert format_result(-7.0) == "-7"

    def test_zero(self):
        assert format_result(0.0) == "0"
        assert format_result(-0.0) == "0"

    def test_twelve_significant_digits(self):
        assert format_result(1 / 3) == "0.333333333333"

    def test_large_values_use_exponent(self):
        assert format_result(1e20) == "1e+20"

    def test_custom_precision(self):
        assert format_result(math.pi, precision=3) == "3.14"


# ---------------------------------------------------------------------------
# Full pipeline
# ---------------------------------------------------------------------------


class TestEvaluate:
    @pytest.mark.parametrize(
        ("expression", "expected"),
        [
            ("2 + 3", "5"),
            ("2^10", "1024"),
            ("sqrt(16)", "4"),
            ("c * 1e-9", "0.299792458"),
            ("sin(0)", "0"),
            ("cos(0)", "1"),
            ("sin(pi / 2)", "1"),
            ("log(1000)", "3"),
            ("ln(e_math)", "1"),
            ("abs(-3)", "3"),
            ("pow(2, 3)", "8"),
            ("10^400", "Infinity"),
        ],
    )
    def test_expressions(self, expression, expected):
        assert evaluate(expression) == expected

    @pytest.mark.parametrize(
        ("expression", "message"),
        [
            ("abs(1, 2)", "abs() takes 1 argument but 2 were given"),
            ("pow(2)", "pow() takes 2 arguments but 1 was given"),
            ("sin(1e400)", "sin(): math domain error"),
        ],
    )
    def test_errors_use_the_typed_function_name(self, expression, message):
        with pytest.raises(EvaluationError) as excinfo:
            evaluate(expression)
        assert str(excinfo.value) == message

    @pytest.mark.parametrize("name", sorted(CONSTANTS))
    def test_every_constant_round_trips(self, name):
        assert evaluate(name) == format_result(CONSTANTS[name])

    def test_variables(self):
        assert evaluate("x^2", variables={"x": -3.0}) == "9"

    def test_division_by_zero(self):
        with pytest.raises(DomainError, match="Division by zero"):
            evaluate("1/0")
