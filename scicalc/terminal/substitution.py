"""Whole-word substitution of constants and variables into an expression."""

from __future__ import annotations

import re
from typing import Mapping

IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def render_literal(value: float) -> str:
    """Render a number as a decimal literal the evaluator can read back.

    Negative values are parenthesised so that ``x^2`` with ``x = -3``
    squares the whole value.
    """
    text = repr(float(value))
    if text.startswith("-"):
        return f"({text})"
    return text


def merged_symbols(
    constants: Mapping[str, float],
    variables: Mapping[str, float] | None = None,
) -> dict[str, float]:
    """Merge both tables. Variables shadow constants of the same name."""
    table = dict(constants)
    if variables:
        table.update(variables)
    return table


def substitute_symbols(
    expression: str,
    constants: Mapping[str, float],
    variables: Mapping[str, float] | None = None,
) -> str:
    """Replace every whole-word symbol name with its numeric literal.

    A single regex pass over the merged table, so a substituted value is
    never scanned again. Names directly followed by ``(`` are function
    calls and stay as they are; unknown names are left for the evaluator
    to reject.
    """
    table = merged_symbols(constants, variables)
    if not table:
        return expression

    # Longest first so that "e_math" wins over "e" at the same position.
    names = sorted(table, key=len, reverse=True)
    pattern = re.compile(
        r"(?<![\w.])(" + "|".join(re.escape(n) for n in names) + r")\b(?!\s*\()"
    )
    return pattern.sub(lambda m: render_literal(table[m.group(1)]), expression)
