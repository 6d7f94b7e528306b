"""Prompt templates for the OpenRouter agents demo.

System prompts define each agent's persona; task templates are filled with
``str.format`` by the orchestration graphs.
"""

KIMI_SYSTEM = (
    "You are Kimi, a helpful AI assistant specialized in analysis, research, "
    "and providing detailed explanations. You excel at breaking down complex "
    "problems and providing structured responses."
)

GEMINI_SYSTEM = (
    "You are Gemini Pro, an AI assistant specialized in creative problem-solving, "
    "code generation, and mathematical computations. You provide innovative "
    "solutions and can handle complex calculations."
)

SYSTEM_PROMPTS = {
    "kimi": KIMI_SYSTEM,
    "gemini": GEMINI_SYSTEM,
}

# ---------------------------------------------------------------------------
# Collaborative task (Kimi analyses, Gemini builds on the analysis)
# ---------------------------------------------------------------------------

DEFAULT_KIMI_ROLE = "Analyze this task and provide detailed insights"
DEFAULT_GEMINI_ROLE = "Provide creative solutions and implementation strategies"

COLLABORATION_ANALYSIS = "{role}: {task}"

COLLABORATION_SOLUTION = (
    '{role}: Based on this analysis: "{analysis}", provide your solution for: {task}'
)

# ---------------------------------------------------------------------------
# Debate (Kimi states a position, Gemini responds)
# ---------------------------------------------------------------------------

DEBATE_POSITION = (
    "Present your position on this topic: {topic}. Be analytical and structured."
)

DEBATE_RESPONSE = (
    'Respond to this position: "{position}" on the topic: {topic}. '
    "Provide alternative perspectives or build upon it creatively."
)
