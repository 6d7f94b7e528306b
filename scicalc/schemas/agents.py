"""Pydantic models for agent responses and orchestration results."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class AgentResponse(BaseModel):
    """One completion from one agent."""

    agent: str
    model: str
    content: str
    usage: TokenUsage = Field(default_factory=TokenUsage)


class ConsultResult(BaseModel):
    """Both agents answered the same query in parallel."""

    query: str
    responses: dict[str, AgentResponse]
    timestamp: datetime = Field(default_factory=_utcnow)


class CollaborationResult(BaseModel):
    """Kimi's analysis followed by Gemini's solution."""

    task: str
    analysis: AgentResponse
    solution: AgentResponse
    timestamp: datetime = Field(default_factory=_utcnow)


class DebateResult(BaseModel):
    """Kimi's position followed by Gemini's counter."""

    topic: str
    position: AgentResponse
    counter: AgentResponse
    timestamp: datetime = Field(default_factory=_utcnow)
