"""Agent orchestration graphs.

consult:      START → [kimi, gemini] (parallel) → END
collaborate:  START → kimi (analysis) → gemini (solution) → END
debate:       START → kimi (position) → gemini (counter) → END

Agents are resolved when a node runs, so every node picks up the current
agents.toml models and each node retries under the [retry] policy.
"""

from __future__ import annotations

from typing import Callable

import structlog
from langgraph.graph import END, START, StateGraph
from langgraph.types import RetryPolicy

from scicalc.agents.openrouter import get_agent
from scicalc.config import get_app_settings
from scicalc.prompts.templates import (
    COLLABORATION_ANALYSIS,
    COLLABORATION_SOLUTION,
    DEBATE_POSITION,
    DEBATE_RESPONSE,
    DEFAULT_GEMINI_ROLE,
    DEFAULT_KIMI_ROLE,
)
from scicalc.schemas.agents import (
    AgentResponse,
    CollaborationResult,
    ConsultResult,
    DebateResult,
)
from scicalc.schemas.state import OrchestrationState

logger = structlog.get_logger(__name__)

PromptBuilder = Callable[[OrchestrationState], str]


def _agent_node(agent_key: str, build_prompt: PromptBuilder):
    """Create a node that asks one agent and stores its reply under ``<key>_response``."""

    async def node(state: OrchestrationState) -> dict:
        response = await get_agent(agent_key).ainvoke(build_prompt(state))
        return {f"{agent_key}_response": response}

    node.__name__ = f"{agent_key}_node"
    return node


def _retry_policy() -> RetryPolicy:
    retry = get_app_settings().retry
    return RetryPolicy(
        max_attempts=retry.max_attempts,
        initial_interval=retry.initial_interval,
        backoff_factor=retry.backoff_factor,
    )


def _sequential(first: PromptBuilder, second: PromptBuilder) -> StateGraph:
    builder = StateGraph(OrchestrationState)
    retry = _retry_policy()
    builder.add_node("kimi", _agent_node("kimi", first), retry_policy=retry)
    builder.add_node("gemini", _agent_node("gemini", second), retry_policy=retry)
    builder.add_edge(START, "kimi")
    builder.add_edge("kimi", "gemini")
    builder.add_edge("gemini", END)
    return builder


# ---------------------------------------------------------------------------
# Graph builders
# ---------------------------------------------------------------------------


def build_consult_graph() -> StateGraph:
    """Fan-out: both agents answer the raw query in parallel."""
    builder = StateGraph(OrchestrationState)
    retry = _retry_policy()
    for key in ("kimi", "gemini"):
        builder.add_node(key, _agent_node(key, lambda s: s["query"]), retry_policy=retry)
        builder.add_edge(START, key)
        builder.add_edge(key, END)
    return builder


def build_collaboration_graph() -> StateGraph:
    return _sequential(
        lambda s: COLLABORATION_ANALYSIS.format(role=s["kimi_role"], task=s["query"]),
        lambda s: COLLABORATION_SOLUTION.format(
            role=s["gemini_role"],
            analysis=s["kimi_response"].content,
            task=s["query"],
        ),
    )


def build_debate_graph() -> StateGraph:
    return _sequential(
        lambda s: DEBATE_POSITION.format(topic=s["query"]),
        lambda s: DEBATE_RESPONSE.format(position=s["kimi_response"].content, topic=s["query"]),
    )


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


async def single_agent(
    agent_key: str,
    query: str,
    temperature: float | None = None,
) -> AgentResponse:
    """Ask one agent directly (no graph, no retry)."""
    return await get_agent(agent_key).ainvoke(query, temperature=temperature)


async def consult_both(query: str) -> ConsultResult:
    logger.info("consult_start")
    state = await build_consult_graph().compile().ainvoke({"query": query})
    return ConsultResult(
        query=query,
        responses={"kimi": state["kimi_response"], "gemini": state["gemini_response"]},
    )


async def collaborative_task(
    task: str,
    kimi_role: str | None = None,
    gemini_role: str | None = None,
) -> CollaborationResult:
    logger.info("collaboration_start")
    state = await build_collaboration_graph().compile().ainvoke(
        {
            "query": task,
            "kimi_role": kimi_role or DEFAULT_KIMI_ROLE,
            "gemini_role": gemini_role or DEFAULT_GEMINI_ROLE,
        }
    )
    return CollaborationResult(
        task=task,
        analysis=state["kimi_response"],
        solution=state["gemini_response"],
    )


async def agent_debate(topic: str) -> DebateResult:
    logger.info("debate_start")
    state = await build_debate_graph().compile().ainvoke({"query": topic})
    return DebateResult(
        topic=topic,
        position=state["kimi_response"],
        counter=state["gemini_response"],
    )
