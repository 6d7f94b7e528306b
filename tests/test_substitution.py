"""Tests for whole-word constant and variable substitution."""

from __future__ import annotations

import math

from scicalc.terminal.constants import CONSTANTS
from scicalc.terminal.substitution import merged_symbols, render_literal, substitute_symbols


class TestRenderLiteral:
    def test_positive_uses_repr(self):
        assert render_literal(2.0) == "2.0"
        assert render_literal(1e-30) == "1e-30"

    def test_negative_is_parenthesised(self):
        assert render_literal(-1.5) == "(-1.5)"


class TestSubstituteSymbols:
    def test_constant_replaced(self):
        assert substitute_symbols("2 * pi", CONSTANTS) == f"2 * {math.pi!r}"

    def test_no_match_inside_longer_word(self):
        assert substitute_symbols("spin", CONSTANTS) == "spin"

    def test_e_math_is_not_split(self):
        assert substitute_symbols("e_math", CONSTANTS) == repr(math.e)

    def test_exponent_literal_untouched(self):
        assert substitute_symbols("2.5e3 + 1e-9", CONSTANTS) == "2.5e3 + 1e-9"

    def test_function_call_names_untouched(self):
        assert substitute_symbols("g(1)", CONSTANTS) == "g(1)"
        assert substitute_symbols("g (1)", CONSTANTS) == "g (1)"

    def test_unknown_identifier_left_in_place(self):
        assert substitute_symbols("foo + 1", CONSTANTS) == "foo + 1"

    def test_dotted_names_untouched(self):
        assert substitute_symbols("math.pi", CONSTANTS) == "math.pi"

    def test_variables_shadow_constants(self):
        assert substitute_symbols("pi", CONSTANTS, {"pi": 3.0}) == "3.0"

    def test_negative_variable_parenthesised(self):
        assert substitute_symbols("x^2", CONSTANTS, {"x": -3.0}) == "(-3.0)^2"

    def test_single_pass(self):
        """A substituted literal containing 'e' is not scanned again."""
        assert substitute_symbols("a", CONSTANTS, {"a": 1e-30}) == "1e-30"

    def test_empty_tables(self):
        assert substitute_symbols("x + 1", {}, {}) == "x + 1"


class TestMergedSymbols:
    def test_merge_does_not_mutate_constants(self):
        table = merged_symbols(CONSTANTS, {"c": 1.0})
        assert table["c"] == 1.0
        assert CONSTANTS["c"] == 2.99792458e8
