"""In-memory store of terminal sessions for the REST API.

Each session is an independent ``Terminal`` with its own variables and
history. The store is capped; opening a session beyond the cap evicts the
least recently used one.
"""

from __future__ import annotations

from collections import OrderedDict

import structlog

from scicalc.terminal.commands import Terminal
from scicalc.terminal.session import TerminalSession

logger = structlog.get_logger(__name__)


class TerminalSessionStore:
    def __init__(
        self,
        max_sessions: int = 100,
        history_limit: int = 50,
        precision: int = 12,
        output_limit: int = 500,
    ) -> None:
        self._max = max_sessions
        self._history_limit = history_limit
        self._output_limit = output_limit
        self._precision = precision
        self._terminals: OrderedDict[str, Terminal] = OrderedDict()

    def __len__(self) -> int:
        return len(self._terminals)

    def create(self) -> Terminal:
        while len(self._terminals) >= self._max:
            evicted, _ = self._terminals.popitem(last=False)
            logger.info("terminal_session_evicted", session_id=evicted)
        terminal = Terminal(
            TerminalSession(history_limit=self._history_limit, output_limit=self._output_limit),
            precision=self._precision,
        )
        self._terminals[terminal.session.session_id] = terminal
        logger.info("terminal_session_created", session_id=terminal.session.session_id)
        return terminal

    def get(self, session_id: str) -> Terminal | None:
        terminal = self._terminals.get(session_id)
        if terminal is not None:
            self._terminals.move_to_end(session_id)
        return terminal

    def delete(self, session_id: str) -> bool:
        terminal = self._terminals.pop(session_id, None)
        if terminal is None:
            return False
        terminal.close()
        logger.info("terminal_session_closed", session_id=session_id)
        return True
