"""Tests for prompt template formatting safety."""

from scicalc.prompts.templates import (
    COLLABORATION_ANALYSIS,
    COLLABORATION_SOLUTION,
    DEBATE_POSITION,
    DEBATE_RESPONSE,
    SYSTEM_PROMPTS,
)


def test_every_agent_has_a_system_prompt():
    assert set(SYSTEM_PROMPTS) == {"kimi", "gemini"}
    assert all(prompt.strip() for prompt in SYSTEM_PROMPTS.values())


def test_collaboration_templates_format_without_keyerror():
    analysis = COLLABORATION_ANALYSIS.format(role="Analyze", task="Build a bridge")
    solution = COLLABORATION_SOLUTION.format(role="Solve", analysis="A", task="Build a bridge")
    assert analysis == "Analyze: Build a bridge"
    assert solution.startswith('Solve: Based on this analysis: "A"')


def test_debate_templates_keep_braces_in_user_text():
    topic = "Is {x} well defined?"
    assert topic in DEBATE_POSITION.format(topic=topic)
    assert topic in DEBATE_RESPONSE.format(position="p", topic=topic)
