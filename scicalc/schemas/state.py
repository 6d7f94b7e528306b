"""Graph state for the agents orchestration graphs."""

from __future__ import annotations

from typing import TypedDict

from scicalc.schemas.agents import AgentResponse


class OrchestrationState(TypedDict, total=False):
    """Shared by the consult, collaboration and debate graphs.

    ``query`` holds the query, task or topic. Each agent node writes only
    its own response key, so parallel branches never conflict.
    """

    query: str
    kimi_role: str
    gemini_role: str

    kimi_response: AgentResponse
    gemini_response: AgentResponse
