"""Textual rewriting of user-facing function names and the power operator."""

from __future__ import annotations

import re

# User-facing name -> name understood by the arithmetic evaluator.
FUNCTION_REWRITES: dict[str, str] = {
    "sin": "math.sin",
    "cos": "math.cos",
    "tan": "math.tan",
    "sqrt": "math.sqrt",
    "log": "math.log10",
    "ln": "math.log",
    "pow": "math.pow",
    "abs": "math.fabs",
}

_FUNCTION_RE = re.compile(
    r"(?<![\w.])(" + "|".join(FUNCTION_REWRITES) + r")\s*\("
)


def rewrite_syntax(expression: str) -> str:
    """Rewrite ``sin(``-style calls to ``math.sin(`` and ``^`` to ``**``.

    Both rewrites are single regex passes; ``ln(`` becomes ``math.log(`` and
    is not picked up again as ``log(``.
    """
    rewritten = _FUNCTION_RE.sub(
        lambda m: f"{FUNCTION_REWRITES[m.group(1)]}(", expression
    )
    return rewritten.replace("^", "**")
