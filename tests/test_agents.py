"""Tests for the OpenRouter agents, LLM factory and orchestration graphs (mocked LLM)."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from scicalc.agents.openrouter import (
    AgentInvocationError,
    AgentNotFoundError,
    OpenRouterAgent,
    get_agent,
    list_agents,
)
from scicalc.config import Settings
from scicalc.graphs.orchestration import (
    agent_debate,
    collaborative_task,
    consult_both,
    single_agent,
)
from scicalc.models import _make_length_validator, create_llm
from scicalc.prompts.templates import DEFAULT_GEMINI_ROLE, GEMINI_SYSTEM, KIMI_SYSTEM
from scicalc.schemas.agents import AgentResponse


# ---------------------------------------------------------------------------
# LLM factory
# ---------------------------------------------------------------------------


class TestCreateLLM:
    def test_openrouter_client(self):
        settings = Settings(_env_file=None, openrouter_api_key="k", app_title="Calc")
        llm = create_llm("gemini", settings=settings)
        chat = llm.first
        assert chat.model_name == "google/gemini-pro-1.5"
        assert chat.openai_api_base == "https://openrouter.ai/api/v1"
        assert chat.default_headers["X-Title"] == "Calc"
        assert chat.default_headers["HTTP-Referer"] == "http://localhost:3000"

    def test_temperature_override(self):
        settings = Settings(_env_file=None, openrouter_api_key="k")
        assert create_llm("kimi", temperature=0.1, settings=settings).first.temperature == 0.1


class TestLengthValidator:
    def test_short_response_raises(self):
        with pytest.raises(ValueError, match="too short"):
            _make_length_validator(5).invoke(AIMessage(content="  hi  "))

    def test_long_enough_passes(self):
        message = AIMessage(content="hello world")
        assert _make_length_validator(5).invoke(message) is message


# ---------------------------------------------------------------------------
# Agents
# ---------------------------------------------------------------------------


class TestGetAgent:
    def test_kimi(self):
        agent = get_agent("kimi")
        assert agent.name == "KimiAI"
        assert agent.model == "deepseek/deepseek-chat"
        assert agent.system_prompt == KIMI_SYSTEM

    def test_gemini(self):
        assert get_agent("gemini").system_prompt == GEMINI_SYSTEM

    def test_unknown(self):
        with pytest.raises(AgentNotFoundError) as excinfo:
            get_agent("claude")
        assert "kimi, gemini" in str(excinfo.value)

    def test_list_agents(self):
        assert [a["key"] for a in list_agents()] == ["kimi", "gemini"]


class TestOpenRouterAgent:
    @pytest.mark.asyncio
    async def test_ainvoke_returns_content_and_usage(self):
        llm = MagicMock()
        llm.ainvoke = AsyncMock(
            return_value=AIMessage(
                content="Entanglement is...",
                usage_metadata={"input_tokens": 12, "output_tokens": 30, "total_tokens": 42},
            )
        )
        agent = OpenRouterAgent("kimi", "KimiAI", "deepseek/deepseek-chat", KIMI_SYSTEM)

        with patch("scicalc.agents.openrouter.create_llm", return_value=llm) as factory:
            response = await agent.ainvoke("Explain entanglement", temperature=0.3)

        factory.assert_called_once_with("kimi", temperature=0.3)
        messages = llm.ainvoke.call_args.args[0]
        assert isinstance(messages[0], SystemMessage)
        assert isinstance(messages[1], HumanMessage)
        assert messages[1].content == "Explain entanglement"
        assert response.content == "Entanglement is..."
        assert response.agent == "KimiAI"
        assert response.usage.total_tokens == 42
        assert response.usage.prompt_tokens == 12

    @pytest.mark.asyncio
    async def test_no_system_prompt(self):
        llm = MagicMock()
        llm.ainvoke = AsyncMock(return_value=AIMessage(content="ok"))
        agent = OpenRouterAgent("kimi", "KimiAI", "m")
        with patch("scicalc.agents.openrouter.create_llm", return_value=llm):
            response = await agent.ainvoke("hi")
        assert len(llm.ainvoke.call_args.args[0]) == 1
        assert response.usage.total_tokens == 0

    @pytest.mark.asyncio
    async def test_failure_wrapped(self):
        llm = MagicMock()
        llm.ainvoke = AsyncMock(side_effect=RuntimeError("502 Bad Gateway"))
        agent = OpenRouterAgent("gemini", "GeminiPro", "m")
        with patch("scicalc.agents.openrouter.create_llm", return_value=llm):
            with pytest.raises(AgentInvocationError, match="GeminiPro failed: 502 Bad Gateway"):
                await agent.ainvoke("hi")


# ---------------------------------------------------------------------------
# Orchestration graphs
# ---------------------------------------------------------------------------


class _FakeAgent:
    def __init__(self, key: str, calls: list[tuple[str, str]]) -> None:
        self.key = key
        self.calls = calls

    async def ainvoke(self, message: str, temperature: float | None = None) -> AgentResponse:
        self.calls.append((self.key, message))
        return AgentResponse(agent=self.key, model="test/model", content=f"{self.key} reply")


@pytest.fixture
def agent_calls():
    calls: list[tuple[str, str]] = []
    with patch(
        "scicalc.graphs.orchestration.get_agent",
        side_effect=lambda key: _FakeAgent(key, calls),
    ):
        yield calls


class TestOrchestration:
    @pytest.mark.asyncio
    async def test_single_agent(self, agent_calls):
        response = await single_agent("gemini", "2 + 2?")
        assert response.content == "gemini reply"
        assert agent_calls == [("gemini", "2 + 2?")]

    @pytest.mark.asyncio
    async def test_consult_both_asks_both_with_same_query(self, agent_calls):
        result = await consult_both("What is entropy?")
        assert set(result.responses) == {"kimi", "gemini"}
        assert result.responses["kimi"].content == "kimi reply"
        assert sorted(agent_calls) == [
            ("gemini", "What is entropy?"),
            ("kimi", "What is entropy?"),
        ]

    @pytest.mark.asyncio
    async def test_collaboration_feeds_analysis_to_gemini(self, agent_calls):
        result = await collaborative_task("Design a solar array", kimi_role="Analyze")
        assert [key for key, _ in agent_calls] == ["kimi", "gemini"]
        assert agent_calls[0][1] == "Analyze: Design a solar array"
        gemini_prompt = agent_calls[1][1]
        assert gemini_prompt.startswith(DEFAULT_GEMINI_ROLE)
        assert '"kimi reply"' in gemini_prompt
        assert result.analysis.content == "kimi reply"
        assert result.solution.content == "gemini reply"

    @pytest.mark.asyncio
    async def test_debate_passes_position(self, agent_calls):
        result = await agent_debate("Nuclear power")
        assert "Nuclear power" in agent_calls[0][1]
        assert 'Respond to this position: "kimi reply"' in agent_calls[1][1]
        assert result.topic == "Nuclear power"
        assert result.counter.content == "gemini reply"
