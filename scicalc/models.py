"""LLM factory for the OpenRouter agents demo.

Every agent talks to OpenRouter's OpenAI-compatible endpoint through
``ChatOpenAI``. Models and temperatures are configured in agents.toml.

The LLM is piped with a response-length validator so that empty
responses raise and are retried by the graph's RetryPolicy.
"""

from __future__ import annotations

import structlog
from langchain_core.runnables import Runnable, RunnableLambda
from langchain_openai import ChatOpenAI

from scicalc.config import Settings, get_app_settings, get_settings

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Response length validator
# ---------------------------------------------------------------------------


def _make_length_validator(min_chars: int) -> RunnableLambda:
    """Create a Runnable that raises if the LLM response is too short.

    Piped after an LLM (``llm | validator``), a short response raises a
    ``ValueError`` instead of being returned as a valid answer.
    """

    def _validate(response):  # noqa: ANN001
        content = response.content if response.content else ""
        stripped = content.strip()
        if len(stripped) < min_chars:
            raise ValueError(
                f"Response too short ({len(stripped)} chars, minimum {min_chars})."
            )
        return response

    return RunnableLambda(_validate)


# ---------------------------------------------------------------------------
# LLM factory
# ---------------------------------------------------------------------------


def create_llm(
    agent_name: str,
    temperature: float | None = None,
    max_tokens: int | None = None,
    settings: Settings | None = None,
) -> Runnable:
    """Create an OpenRouter chat model for an agent, piped through the validator.

    Args:
        agent_name: Agent identifier used to look up config in agents.toml.
        temperature: Sampling temperature. None = read from agents.toml.
        max_tokens: Maximum tokens in response. None = [defaults] max_tokens.
        settings: Optional Settings instance; loads from env if not provided.
    """
    if settings is None:
        settings = get_settings()

    app_settings = get_app_settings()
    model = app_settings.get_model(agent_name)

    if temperature is None:
        temperature = app_settings.get_temperature(agent_name)
    if max_tokens is None:
        max_tokens = app_settings.defaults.max_tokens

    llm = ChatOpenAI(
        model=model,
        temperature=temperature,
        max_tokens=max_tokens,
        openai_api_key=settings.openrouter_api_key,
        openai_api_base=settings.openrouter_base_url,
        timeout=app_settings.defaults.timeout,
        default_headers={
            "HTTP-Referer": settings.http_referer,
            "X-Title": settings.app_title,
        },
    )
    logger.debug("llm_created", agent=agent_name, model=model, temperature=temperature)
    return llm | _make_length_validator(app_settings.defaults.min_response_length)
