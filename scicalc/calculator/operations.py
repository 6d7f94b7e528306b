"""Button-style calculator operations used by the REST calculate endpoints.

These operate on already-parsed numbers (no expression parsing) and raise
the terminal's ``DomainError`` for undefined inputs so the API maps every
calculator failure the same way.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone

from scicalc.terminal.errors import DomainError, EvaluationError
from scicalc.terminal.evaluator import power

BASIC_OPERATIONS = ("add", "subtract", "multiply", "divide", "sqrt")
SCIENTIFIC_OPERATIONS = ("sin", "cos", "tan", "log", "ln", "exp", "power")


@dataclass
class CalculationResult:
    expression: str
    result: float
    operation: str
    operands: list[float]
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


def _fmt(value: float) -> str:
    """Render an operand the way a user typed it (``5`` not ``5.0``)."""
    return str(int(value)) if float(value).is_integer() else repr(value)


def _clean(value: float) -> float:
    """Round to 10 decimals to drop floating point noise."""
    if not math.isfinite(value):
        raise DomainError("Result is not a finite number")
    return round(value, 10)


def calculate_basic(operation: str, a: float, b: float | None = None) -> CalculationResult:
    """Perform one of ``add subtract multiply divide sqrt``."""
    if operation not in BASIC_OPERATIONS:
        raise EvaluationError(f"Invalid operation: {operation}")
    if operation != "sqrt" and b is None:
        raise EvaluationError(f"Operation '{operation}' requires two operands")

    if operation == "add":
        result, expression = a + b, f"{_fmt(a)} + {_fmt(b)}"
    elif operation == "subtract":
        result, expression = a - b, f"{_fmt(a)} - {_fmt(b)}"
    elif operation == "multiply":
        result, expression = a * b, f"{_fmt(a)} × {_fmt(b)}"
    elif operation == "divide":
        if b == 0:
            raise DomainError("Division by zero is not allowed")
        result, expression = a / b, f"{_fmt(a)} ÷ {_fmt(b)}"
    else:
        if a < 0:
            raise DomainError("Square root of negative number is not allowed")
        result, expression = math.sqrt(a), f"√{_fmt(a)}"

    operands = [a] if operation == "sqrt" else [a, b]
    return CalculationResult(expression, _clean(result), operation, operands)


def calculate_scientific(
    operation: str,
    value: float,
    unit: str = "degrees",
    exponent: float | None = None,
) -> CalculationResult:
    """Perform a scientific operation on a single value.

    Trigonometric inputs are converted from degrees unless ``unit`` is
    ``radians``.
    """
    if operation not in SCIENTIFIC_OPERATIONS:
        raise EvaluationError(f"Invalid scientific operation: {operation}")
    if unit not in ("degrees", "radians"):
        raise EvaluationError(f"Invalid angle unit: {unit}")

    angle = math.radians(value) if unit == "degrees" else value
    suffix = "°" if unit == "degrees" else ""
    operands = [value]

    if operation in ("sin", "cos", "tan"):
        func = getattr(math, operation)
        result, expression = func(angle), f"{operation}({_fmt(value)}{suffix})"
    elif operation == "log":
        if value <= 0:
            raise DomainError("Logarithm of non-positive number is not allowed")
        result, expression = math.log10(value), f"log({_fmt(value)})"
    elif operation == "ln":
        if value <= 0:
            raise DomainError("Natural logarithm of non-positive number is not allowed")
        result, expression = math.log(value), f"ln({_fmt(value)})"
    elif operation == "exp":
        try:
            result = math.exp(value)
        except OverflowError:
            raise DomainError("Result is not a finite number") from None
        expression = f"e^{_fmt(value)}"
    else:
        if exponent is None:
            raise EvaluationError("Invalid exponent provided")
        result = power(value, exponent)
        expression = f"{_fmt(value)}^{_fmt(exponent)}"
        operands = [value, exponent]

    return CalculationResult(expression, _clean(result), operation, operands)


@dataclass
class ThreePhasePower:
    real_power: float       # W
    apparent_power: float   # VA
    reactive_power: float   # VAR
    expression: str


def three_phase_power(voltage: float, current: float, power_factor: float = 0.8) -> ThreePhasePower:
    """Balanced three-phase power from line voltage and line current."""
    if not 0 <= power_factor <= 1:
        raise DomainError("Power factor must be between 0 and 1")
    apparent = _clean(math.sqrt(3) * voltage * current)
    real = _clean(apparent * power_factor)
    reactive = _clean(apparent * math.sin(math.acos(power_factor)))
    return ThreePhasePower(
        real_power=round(real, 2),
        apparent_power=round(apparent, 2),
        reactive_power=round(reactive, 2),
        expression=f"3φ: {_fmt(voltage)}V × {_fmt(current)}A × PF{_fmt(power_factor)}",
    )


_EXPRESSION_MARKERS = (
    ("√", "sqrt"),
    ("sqrt", "sqrt"),
    ("sin", "sin"),
    ("cos", "cos"),
    ("tan", "tan"),
    ("ln", "ln"),
    ("log", "log"),
    ("^", "power"),
    ("×", "multiply"),
    ("*", "multiply"),
    ("÷", "divide"),
    ("/", "divide"),
    ("+", "add"),
    ("-", "subtract"),
)


def classify_expression(expression: str) -> str:
    """Best-effort operation label for a free-form expression (for stats)."""
    for marker, label in _EXPRESSION_MARKERS:
        if marker in expression:
            return label
    return "other"
