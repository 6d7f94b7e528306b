"""OpenRouter agents: Kimi (analysis) and Gemini (creative problem-solving).

Each agent pairs a persona system prompt with an OpenRouter model from
agents.toml. ``ainvoke`` sends one user message and returns the reply
with token usage.
"""

from __future__ import annotations

import structlog
from langchain_core.messages import HumanMessage, SystemMessage

from scicalc.config import get_app_settings
from scicalc.models import create_llm
from scicalc.prompts.templates import SYSTEM_PROMPTS
from scicalc.schemas.agents import AgentResponse, TokenUsage

logger = structlog.get_logger(__name__)

AGENT_KEYS = ("kimi", "gemini")


class AgentNotFoundError(KeyError):
    def __init__(self, key: str) -> None:
        super().__init__(key)
        self.key = key

    def __str__(self) -> str:
        return f"Unknown agent '{self.key}'. Available: {', '.join(AGENT_KEYS)}"


class AgentInvocationError(Exception):
    """The upstream model call failed or returned an unusable reply."""

    def __init__(self, agent: str, message: str) -> None:
        super().__init__(f"{agent} failed: {message}")
        self.agent = agent


def _usage_from(response) -> TokenUsage:  # noqa: ANN001
    """Read token counts from an AIMessage (0 when the provider sent none)."""
    usage = getattr(response, "usage_metadata", None) or {}
    return TokenUsage(
        prompt_tokens=usage.get("input_tokens", 0) or 0,
        completion_tokens=usage.get("output_tokens", 0) or 0,
        total_tokens=usage.get("total_tokens", 0) or 0,
    )


class OpenRouterAgent:
    def __init__(
        self,
        key: str,
        name: str,
        model: str,
        system_prompt: str = "",
    ) -> None:
        self.key = key
        self.name = name
        self.model = model
        self.system_prompt = system_prompt

    def __repr__(self) -> str:
        return f"OpenRouterAgent(key={self.key!r}, model={self.model!r})"

    async def ainvoke(self, user_message: str, temperature: float | None = None) -> AgentResponse:
        """Send one message and return the agent's reply.

        Raises:
            AgentInvocationError: on any transport, provider or validation failure.
        """
        messages = []
        if self.system_prompt:
            messages.append(SystemMessage(content=self.system_prompt))
        messages.append(HumanMessage(content=user_message))

        logger.info("agent_invoke_start", agent=self.key, model=self.model)
        llm = create_llm(self.key, temperature=temperature)
        try:
            response = await llm.ainvoke(messages)
        except Exception as exc:
            logger.error("agent_invoke_failed", agent=self.key, error=str(exc))
            raise AgentInvocationError(self.name, str(exc)) from exc

        usage = _usage_from(response)
        logger.info("agent_invoke_done", agent=self.key, total_tokens=usage.total_tokens)
        return AgentResponse(
            agent=self.name,
            model=self.model,
            content=response.content,
            usage=usage,
        )


def get_agent(key: str) -> OpenRouterAgent:
    """Build the agent registered under ``key`` from agents.toml."""
    if key not in AGENT_KEYS:
        raise AgentNotFoundError(key)
    app_settings = get_app_settings()
    agent_cfg = app_settings.get_agent_config(key)
    return OpenRouterAgent(
        key=key,
        name=agent_cfg.name or key,
        model=app_settings.get_model(key),
        system_prompt=SYSTEM_PROMPTS[key],
    )


def list_agents() -> list[dict[str, str]]:
    app_settings = get_app_settings()
    return [
        {
            "key": key,
            "name": app_settings.get_agent_config(key).name or key,
            "model": app_settings.get_model(key),
        }
        for key in AGENT_KEYS
    ]
