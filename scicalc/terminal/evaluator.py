"""Constrained arithmetic evaluation and result formatting.

The evaluator is a small recursive-descent parser over numeric literals,
the operators ``+ - * / **``, parentheses, and a fixed whitelist of
``math.*`` functions. It never touches Python's ``eval``.

Grammar::

    expression := term (("+" | "-") term)*
    term       := unary (("*" | "/") unary)*
    unary      := ("+" | "-") unary | power
    power      := primary ("**" unary)?
    primary    := NUMBER | NAME "(" [args] ")" | "(" expression ")"
"""

from __future__ import annotations

import math
import re
from typing import Callable, Mapping, NamedTuple

from scicalc.terminal.constants import CONSTANTS
from scicalc.terminal.errors import DomainError, EvaluationError
from scicalc.terminal.rewrite import FUNCTION_REWRITES, rewrite_syntax
from scicalc.terminal.substitution import substitute_symbols

DEFAULT_PRECISION = 12

_TOKEN_RE = re.compile(
    r"""
    (?P<number>(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)
    |(?P<name>[A-Za-z_]\w*(?:\.[A-Za-z_]\w*)*)
    |(?P<op>\*\*|[-+*/(),])
    """,
    re.VERBOSE,
)


class Token(NamedTuple):
    kind: str  # number | name | op | end
    text: str
    pos: int


def tokenize(text: str) -> list[Token]:
    """Split an arithmetic string into tokens, ending with an ``end`` token."""
    tokens: list[Token] = []
    pos = 0
    length = len(text)
    while pos < length:
        if text[pos].isspace():
            pos += 1
            continue
        match = _TOKEN_RE.match(text, pos)
        if match is None:
            raise EvaluationError(f"Unexpected character '{text[pos]}' at position {pos}")
        kind = match.lastgroup or "op"
        tokens.append(Token(kind, match.group(), pos))
        pos = match.end()
    tokens.append(Token("end", "", length))
    return tokens


# ---------------------------------------------------------------------------
# Whitelisted functions
# ---------------------------------------------------------------------------


def _sqrt(x: float) -> float:
    if x < 0:
        raise DomainError("Square root of negative number")
    return math.sqrt(x)


def _log10(x: float) -> float:
    if x <= 0:
        raise DomainError("Logarithm of non-positive number")
    return math.log10(x)


def _ln(x: float) -> float:
    if x <= 0:
        raise DomainError("Natural logarithm of non-positive number")
    return math.log(x)


def power(base: float, exponent: float) -> float:
    """``base ** exponent`` with explicit domain errors and overflow to inf."""
    if base == 0 and exponent < 0:
        raise DomainError("Division by zero")
    if base < 0 and not float(exponent).is_integer():
        raise DomainError("Negative base with fractional exponent")
    try:
        return math.pow(base, exponent)
    except OverflowError:
        if base < 0 and float(exponent) % 2 == 1:
            return -math.inf
        return math.inf


FUNCTIONS: dict[str, tuple[Callable[..., float], int]] = {
    "math.sin": (math.sin, 1),
    "math.cos": (math.cos, 1),
    "math.tan": (math.tan, 1),
    "math.sqrt": (_sqrt, 1),
    "math.log10": (_log10, 1),
    "math.log": (_ln, 1),
    "math.pow": (power, 2),
    "math.fabs": (math.fabs, 1),
}

# Rewritten name -> the name the user typed, for error messages.
_DISPLAY_NAMES: dict[str, str] = {target: name for name, target in FUNCTION_REWRITES.items()}


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


class _Parser:
    def __init__(self, tokens: list[Token]) -> None:
        self._tokens = tokens
        self._index = 0

    @property
    def _current(self) -> Token:
        return self._tokens[self._index]

    def _advance(self) -> Token:
        token = self._tokens[self._index]
        self._index += 1
        return token

    def _accept(self, *ops: str) -> Token | None:
        token = self._current
        if token.kind == "op" and token.text in ops:
            return self._advance()
        return None

    def _expect(self, op: str) -> None:
        if self._accept(op) is None:
            token = self._current
            found = token.text or "end of input"
            raise EvaluationError(f"Expected '{op}' but found '{found}' at position {token.pos}")

    def parse(self) -> float:
        value = self._expression()
        token = self._current
        if token.kind != "end":
            raise EvaluationError(f"Unexpected token '{token.text}' at position {token.pos}")
        return value

    def _expression(self) -> float:
        value = self._term()
        while (op := self._accept("+", "-")) is not None:
            right = self._term()
            value = value + right if op.text == "+" else value - right
        return value

    def _term(self) -> float:
        value = self._unary()
        while (op := self._accept("*", "/")) is not None:
            right = self._unary()
            if op.text == "*":
                value = value * right
            else:
                if right == 0:
                    raise DomainError("Division by zero")
                value = value / right
        return value

    def _unary(self) -> float:
        if (op := self._accept("+", "-")) is not None:
            operand = self._unary()
            return -operand if op.text == "-" else operand
        return self._power()

    def _power(self) -> float:
        base = self._primary()
        if self._accept("**") is not None:
            # Right-associative: 2**3**2 == 2**9
            return power(base, self._unary())
        return base

    def _primary(self) -> float:
        token = self._current
        if token.kind == "number":
            self._advance()
            return float(token.text)
        if token.kind == "name":
            self._advance()
            return self._call(token)
        if self._accept("(") is not None:
            value = self._expression()
            self._expect(")")
            return value
        if token.kind == "end":
            raise EvaluationError("Unexpected end of expression")
        raise EvaluationError(f"Unexpected token '{token.text}' at position {token.pos}")

    def _call(self, name: Token) -> float:
        if name.text not in FUNCTIONS:
            raise EvaluationError(f"Unknown identifier: {name.text}")
        func, arity = FUNCTIONS[name.text]
        display = _DISPLAY_NAMES.get(name.text, name.text)
        if self._accept("(") is None:
            raise EvaluationError(f"Function {display} must be called with parentheses")

        args: list[float] = []
        if self._accept(")") is None:
            args.append(self._expression())
            while self._accept(",") is not None:
                args.append(self._expression())
            self._expect(")")

        if len(args) != arity:
            given = len(args)
            raise EvaluationError(
                f"{display}() takes {arity} argument{'s' if arity != 1 else ''} "
                f"but {given} {'was' if given == 1 else 'were'} given"
            )
        try:
            return float(func(*args))
        except OverflowError:
            return math.inf
        except ValueError as exc:
            raise DomainError(f"{display}(): {exc}") from exc


def evaluate_arithmetic(text: str) -> float:
    """Evaluate a fully substituted and rewritten arithmetic string."""
    if not text.strip():
        raise EvaluationError("Expression is empty")
    try:
        return _Parser(tokenize(text)).parse()
    except RecursionError:
        raise EvaluationError("Expression is nested too deeply") from None


# ---------------------------------------------------------------------------
# Formatting and the full pipeline
# ---------------------------------------------------------------------------


def format_result(value: float, precision: int = DEFAULT_PRECISION) -> str:
    """Format a result to ``precision`` significant digits.

    NaN renders as ``Error`` and any infinity as ``Infinity``.
    """
    if math.isnan(value):
        return "Error"
    if math.isinf(value):
        return "Infinity"
    rounded = float(f"{value:.{precision}g}")
    if rounded == 0:
        return "0"
    if rounded.is_integer() and abs(rounded) < 1e16:
        return str(int(rounded))
    return repr(rounded)


def compute(
    expression: str,
    constants: Mapping[str, float] = CONSTANTS,
    variables: Mapping[str, float] | None = None,
) -> float:
    """Run substitution, rewriting and evaluation; return the raw float."""
    substituted = substitute_symbols(expression, constants, variables)
    return evaluate_arithmetic(rewrite_syntax(substituted))


def evaluate(
    expression: str,
    constants: Mapping[str, float] = CONSTANTS,
    variables: Mapping[str, float] | None = None,
    precision: int = DEFAULT_PRECISION,
) -> str:
    """Evaluate a terminal expression and return the formatted result."""
    return format_result(compute(expression, constants, variables), precision)
