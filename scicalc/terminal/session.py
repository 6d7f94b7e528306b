"""Terminal session state: variables, command history and displayed output.

A session is owned by exactly one terminal and is only mutated by its
command handler. Nothing here is global, so any number of sessions can
coexist (one per CLI run, one per REST session id).
"""

from __future__ import annotations

import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Mapping

from scicalc.terminal.constants import CONSTANTS

DEFAULT_HISTORY_LIMIT = 50
DEFAULT_OUTPUT_LIMIT = 500


class TerminalState(StrEnum):
    """Lifecycle of a terminal: closed, waiting for a line, or mid-command."""

    IDLE = "idle"
    AWAITING_INPUT = "awaiting_input"
    EVALUATING = "evaluating"


class OutputKind(StrEnum):
    COMMAND = "command"
    RESULT = "result"
    ERROR = "error"
    INFO = "info"


@dataclass(frozen=True)
class OutputLine:
    text: str
    kind: OutputKind = OutputKind.RESULT


@dataclass
class TerminalSession:
    """Session-local state for one open terminal."""

    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    constants: Mapping[str, float] = field(default_factory=lambda: CONSTANTS)
    variables: dict[str, float] = field(default_factory=dict)
    history_limit: int = DEFAULT_HISTORY_LIMIT
    output_limit: int = DEFAULT_OUTPUT_LIMIT
    state: TerminalState = TerminalState.IDLE
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    history: deque[str] = field(init=False)
    output: deque[OutputLine] = field(init=False)
    history_index: int = field(init=False, default=-1)

    def __post_init__(self) -> None:
        self.history = deque(maxlen=self.history_limit)
        self.output = deque(maxlen=self.output_limit)

    # -- history -----------------------------------------------------------

    def add_to_history(self, command: str) -> None:
        """Record a command, most recent first. Oldest entries fall off."""
        self.history.appendleft(command)
        self.history_index = -1

    def recall_previous(self) -> str | None:
        """Step back to an older command. None when already at the oldest."""
        if self.history_index < len(self.history) - 1:
            self.history_index += 1
            return self.history[self.history_index]
        return None

    def recall_next(self) -> str | None:
        """Step forward to a newer command.

        Returns "" when stepping past the newest entry back to a blank
        prompt, None when already there.
        """
        if self.history_index > -1:
            self.history_index -= 1
            if self.history_index == -1:
                return ""
            return self.history[self.history_index]
        return None

    # -- output ------------------------------------------------------------

    def add_output(self, text: str, kind: OutputKind = OutputKind.RESULT) -> OutputLine:
        """Append a displayed line. The oldest lines fall off past ``output_limit``."""
        line = OutputLine(text=text, kind=kind)
        self.output.append(line)
        return line

    def clear_output(self) -> None:
        self.output.clear()

    # -- lifecycle ---------------------------------------------------------

    def reset(self) -> None:
        """Discard variables, history and output."""
        self.variables.clear()
        self.history.clear()
        self.history_index = -1
        self.output.clear()
