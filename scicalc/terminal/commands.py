"""Command dispatch for the expression terminal.

One line in, zero or more output lines out. Literal commands (``help``,
``clear``, ``constants``, ``variables``, ``const <name>``) produce canned
text; ``name = expr`` assigns a variable; anything else is evaluated.
Every ``TerminalError`` is caught here and rendered as a single
``Error: ...`` line, so no command can break the session.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

import structlog

from scicalc.terminal.constants import lookup_constant
from scicalc.terminal.errors import (
    ConstantLookupError,
    EvaluationError,
    NamingError,
    TerminalError,
)
from scicalc.terminal.evaluator import DEFAULT_PRECISION, compute, format_result
from scicalc.terminal.rewrite import FUNCTION_REWRITES
from scicalc.terminal.session import (
    OutputKind,
    OutputLine,
    TerminalSession,
    TerminalState,
)
from scicalc.terminal.substitution import IDENTIFIER_RE

logger = structlog.get_logger(__name__)

RESERVED_NAMES = frozenset(FUNCTION_REWRITES) | {"math"}

WELCOME_LINES = (
    "Scientific Programming Console v1.0",
    'Type "help" for commands, "constants" for physics constants',
    "Examples: 2 + 3, c * 1e-9, E = me * c^2",
    "",
)

HELP_TEXT = """\
Available Commands:
help - Show this help text
clear - Clear terminal output
constants - Show all physics constants
variables - Show all stored variables
const <name> - Look up specific constant

Mathematical Operations:
Basic: +, -, *, /, ^, ()
Functions: sin(), cos(), tan(), sqrt(), log(), ln(), pow(), abs()
Constants: c, h, e, me, mp, k, G, pi, etc.
Variables: x = 5, result = x * c

Examples:
E = me * c^2
lambda = h / (me * c)
F = ke * e^2 / (4 * pi * epsilon0 * r^2)"""

_ASSIGNMENT_RE = re.compile(r"^(?P<name>[^=]*)=(?!=)(?P<expr>.*)$", re.DOTALL)


@dataclass
class CommandResult:
    """Lines produced by one command. ``cleared`` means prior output was wiped."""

    lines: list[OutputLine] = field(default_factory=list)
    cleared: bool = False

    @property
    def text(self) -> str:
        return "\n".join(line.text for line in self.lines)


class Terminal:
    """Dispatcher bound to one ``TerminalSession``."""

    def __init__(
        self,
        session: TerminalSession | None = None,
        precision: int = DEFAULT_PRECISION,
    ) -> None:
        self.session = session if session is not None else TerminalSession()
        self.precision = precision

    @property
    def state(self) -> TerminalState:
        return self.session.state

    # -- lifecycle ---------------------------------------------------------

    def open(self) -> list[OutputLine]:
        """Open the terminal. Prints the welcome banner on first open."""
        lines: list[OutputLine] = []
        if self.session.state is TerminalState.IDLE:
            if not self.session.output:
                lines = self._welcome()
            self.session.state = TerminalState.AWAITING_INPUT
            logger.debug("terminal_opened", session_id=self.session.session_id)
        return lines

    def close(self) -> None:
        """Close the terminal and discard all session-local state."""
        self.session.reset()
        self.session.state = TerminalState.IDLE
        logger.debug("terminal_closed", session_id=self.session.session_id)

    # -- input -------------------------------------------------------------

    def execute(self, raw: str) -> CommandResult:
        """Handle one input line."""
        command = raw.strip()
        if not command:
            return CommandResult()

        if self.session.state is TerminalState.IDLE:
            self.open()

        self.session.add_to_history(command)
        result = CommandResult(lines=[self.session.add_output(f">>> {command}", OutputKind.COMMAND)])

        self.session.state = TerminalState.EVALUATING
        try:
            text = self.process(command)
            if command.lower() == "clear":
                return CommandResult(lines=self._welcome(), cleared=True)
        except TerminalError as exc:
            logger.info(
                "terminal_command_failed",
                session_id=self.session.session_id,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            result.lines.append(self.session.add_output(f"Error: {exc}", OutputKind.ERROR))
            return result
        finally:
            self.session.state = TerminalState.AWAITING_INPUT

        logger.debug("terminal_command", session_id=self.session.session_id, command=command)
        if text is not None:
            result.lines.append(self.session.add_output(text, OutputKind.RESULT))
        return result

    def process(self, command: str) -> str | None:
        """Dispatch a stripped, non-empty command and return its output text.

        Raises ``TerminalError`` subclasses on failure.
        """
        keyword = command.lower()
        if keyword == "help":
            return HELP_TEXT
        if keyword == "clear":
            self.session.clear_output()
            return None
        if keyword == "constants":
            return self.constants_text()
        if keyword == "variables":
            return self.variables_text()
        if keyword.startswith("const "):
            return self.lookup_constant(command[len("const "):].strip())

        if "=" in command and "==" not in command:
            return self.assign(command)

        return self.evaluate(command)

    # -- operations ----------------------------------------------------------

    def evaluate(self, expression: str) -> str:
        value = compute(expression, self.session.constants, self.session.variables)
        return format_result(value, self.precision)

    def assign(self, command: str) -> str:
        """Handle ``name = expression``.

        The name is validated before anything is evaluated, and the table is
        only touched once the right-hand side produced a finite value.
        """
        match = _ASSIGNMENT_RE.match(command)
        if match is None:
            raise EvaluationError(f"Invalid assignment: {command}")
        name = match.group("name").strip()
        expression = match.group("expr").strip()

        if not IDENTIFIER_RE.match(name):
            raise NamingError(f"Invalid variable name: '{name}'")
        if name in RESERVED_NAMES:
            raise NamingError(f"'{name}' is a built-in function name")
        if "=" in expression:
            raise EvaluationError("Chained assignment is not supported")

        formatted = self.evaluate(expression)
        if formatted in ("Infinity", "Error"):
            raise EvaluationError(f"Cannot assign non-finite value to '{name}'")

        self.session.variables[name] = float(formatted)
        logger.debug("variable_assigned", session_id=self.session.session_id, name=name)
        return f"{name} = {formatted}"

    def lookup_constant(self, name: str) -> str:
        try:
            value = lookup_constant(name, self.session.constants)
        except ConstantLookupError as exc:
            return str(exc)
        return f"{name} = {format_result(value, self.precision)}"

    def constants_text(self) -> str:
        rows = [f"{name:<12} = {value:.6e}" for name, value in self.session.constants.items()]
        return "Physics Constants:\n" + "\n".join(rows)

    def variables_text(self) -> str:
        if not self.session.variables:
            return "No variables stored"
        rows = [
            f"{name} = {format_result(value, self.precision)}"
            for name, value in self.session.variables.items()
        ]
        return "Stored Variables:\n" + "\n".join(rows)

    def _welcome(self) -> list[OutputLine]:
        return [self.session.add_output(text, OutputKind.INFO) for text in WELCOME_LINES]
