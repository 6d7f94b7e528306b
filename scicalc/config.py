"""Application configuration using pydantic-settings.

Loads secrets and deployment settings from environment variables and .env.
Agent, terminal and history behaviour is loaded from agents.toml.

Priority: CLI args > Environment variables (.env) > agents.toml > hardcoded defaults
"""

import tomllib
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# ---------------------------------------------------------------------------
# App settings from agents.toml
# ---------------------------------------------------------------------------


class AgentConfig(BaseModel):
    """Configuration for a single hosted-model agent."""

    name: str = ""
    model: str | None = None
    temperature: float | None = None


class KimiConfig(AgentConfig):
    name: str = "KimiAI"
    model: str | None = "deepseek/deepseek-chat"


class GeminiConfig(AgentConfig):
    name: str = "GeminiPro"
    model: str | None = "google/gemini-pro-1.5"


class AgentsTable(BaseModel):
    """The [agents] table from agents.toml."""

    kimi: KimiConfig = Field(default_factory=KimiConfig)
    gemini: GeminiConfig = Field(default_factory=GeminiConfig)


class DefaultsTable(BaseModel):
    """The [defaults] table from agents.toml."""

    model: str = "deepseek/deepseek-chat"
    temperature: float = 0.7
    max_tokens: int = 1000
    timeout: int = 60
    min_response_length: int = 1


class RetryConfig(BaseModel):
    """The [retry] table from agents.toml."""

    max_attempts: int = 3
    initial_interval: float = 1.0
    backoff_factor: float = 2.0


class TerminalConfig(BaseModel):
    """The [terminal] table from agents.toml."""

    history_limit: int = 50
    output_limit: int = 500
    precision: int = 12
    max_sessions: int = 100


class PreferencesDefaults(BaseModel):
    """Preferences returned for users who never saved any."""

    theme: str = "light"
    decimal_places: int = 10
    angle_unit: str = "degrees"
    history_limit: int = 50
    auto_save_history: bool = True
    scientific_mode: bool = False


class HistoryConfig(BaseModel):
    """The [history] table from agents.toml."""

    calculation_limit: int = 50
    admin_limit: int = 100
    preferences: PreferencesDefaults = Field(default_factory=PreferencesDefaults)


class AppSettings(BaseModel):
    """Configuration loaded from agents.toml."""

    defaults: DefaultsTable = Field(default_factory=DefaultsTable)
    agents: AgentsTable = Field(default_factory=AgentsTable)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    terminal: TerminalConfig = Field(default_factory=TerminalConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)

    def get_agent_config(self, agent_name: str) -> AgentConfig:
        """Get the config for a specific agent."""
        return getattr(self.agents, agent_name, AgentConfig())

    def get_model(self, agent_name: str) -> str:
        """Get the resolved model for an agent (agent-specific > defaults)."""
        agent_cfg = self.get_agent_config(agent_name)
        return agent_cfg.model or self.defaults.model

    def get_temperature(self, agent_name: str) -> float:
        """Get the resolved temperature for an agent."""
        agent_cfg = self.get_agent_config(agent_name)
        if agent_cfg.temperature is not None:
            return agent_cfg.temperature
        return self.defaults.temperature


TOML_PATH = Path(__file__).parent.parent / "agents.toml"

_APP_SETTINGS_CACHE: AppSettings | None = None


def load_app_settings(toml_path: Path = TOML_PATH) -> AppSettings:
    """Parse agents.toml into AppSettings (defaults when the file is absent)."""
    if toml_path.exists():
        with open(toml_path, "rb") as f:
            data = tomllib.load(f)
        return AppSettings.model_validate(data)
    return AppSettings()


def get_app_settings() -> AppSettings:
    """Load and cache settings from agents.toml."""
    global _APP_SETTINGS_CACHE
    if _APP_SETTINGS_CACHE is None:
        _APP_SETTINGS_CACHE = load_app_settings()
    return _APP_SETTINGS_CACHE


# ---------------------------------------------------------------------------
# Environment settings from .env (API keys, secrets, env-var overrides)
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # OpenRouter (agents demo). Empty key disables the agent routes.
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    http_referer: str = "http://localhost:3000"
    app_title: str = "Multi-Agent Calculator System"

    # Persistence
    database_path: str = "data/calculator.db"

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    # Rate limiting (agent routes)
    rate_limit_rpm: int = 10
    rate_limit_daily: int = 100

    # Comma-separated list; empty means CORS middleware is not installed
    cors_origins: str = ""

    @property
    def openrouter_configured(self) -> bool:
        return bool(self.openrouter_api_key)

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
