"""Exception hierarchy for the expression terminal.

Every error raised while handling a terminal command derives from
``TerminalError`` so the dispatcher can catch a single type and render it
as one line of output.
"""

from __future__ import annotations


class TerminalError(Exception):
    """Base class for all terminal command failures."""


class NamingError(TerminalError):
    """Raised when an assignment target is not a valid identifier."""


class ConstantLookupError(TerminalError, LookupError):
    """Raised when ``const <name>`` asks for a constant that does not exist."""

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return (
            f"Constant '{self.name}' not found. "
            "Type 'constants' to see all available constants."
        )


class EvaluationError(TerminalError):
    """Malformed expression, unknown token, or wrong argument count."""


class DomainError(EvaluationError):
    """Mathematically undefined operation (division by zero, sqrt(-1), ...)."""
