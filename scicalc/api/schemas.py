"""Request/response Pydantic models for the API layer."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from scicalc.calculator.operations import BASIC_OPERATIONS, SCIENTIFIC_OPERATIONS

BasicOperation = Literal[BASIC_OPERATIONS]
ScientificOperation = Literal[SCIENTIFIC_OPERATIONS]


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_.-]+$")
    email: str = Field(..., max_length=254, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    password: str = Field(..., min_length=6, max_length=128)


class LoginRequest(BaseModel):
    email: str
    password: str


class UserResponse(BaseModel):
    id: int
    username: str
    email: str
    created_at: str
    last_login: str | None = None


# ---------------------------------------------------------------------------
# Calculations
# ---------------------------------------------------------------------------


class CalculateRequest(BaseModel):
    """Basic two-operand calculation (``b`` is ignored for sqrt)."""

    operation: BasicOperation
    a: float
    b: float | None = None
    user_id: int | None = Field(default=None, description="Persist for this user when set.")


class ScientificRequest(BaseModel):
    operation: ScientificOperation
    value: float
    unit: Literal["degrees", "radians"] = "degrees"
    exponent: float | None = Field(default=None, description="Required for 'power'.")
    user_id: int | None = None


class ThreePhaseRequest(BaseModel):
    voltage: float = Field(..., gt=0)
    current: float = Field(..., ge=0)
    power_factor: float = Field(default=0.8, ge=0, le=1)


class ThreePhaseResponse(BaseModel):
    real_power: float
    apparent_power: float
    reactive_power: float
    expression: str


class EvaluateRequest(BaseModel):
    """Free-form expression evaluated by the terminal evaluator (stateless)."""

    expression: str = Field(..., min_length=1, max_length=1000)
    variables: dict[str, float] = Field(default_factory=dict)
    user_id: int | None = None


class EvaluateResponse(BaseModel):
    expression: str
    result: str = Field(description="Formatted result, 'Infinity' or 'Error'.")
    value: float | None = Field(default=None, description="Numeric value when finite.")
    calculation_id: int | None = None


class CalculationResponse(BaseModel):
    expression: str
    result: float
    operation: str
    operands: list[float]
    timestamp: str
    calculation_id: int | None = None


class CalculationRecord(BaseModel):
    id: int
    user_id: int | None = None
    expression: str
    result: float
    operation_type: str
    operands: list[float] = Field(default_factory=list)
    is_favorite: bool = False
    created_at: str
    username: str | None = None


# ---------------------------------------------------------------------------
# Memory & preferences
# ---------------------------------------------------------------------------


class MemoryRequest(BaseModel):
    value: float


class MemoryResponse(BaseModel):
    user_id: int
    memory_value: float


class Preferences(BaseModel):
    theme: Literal["light", "dark"]
    decimal_places: int
    angle_unit: Literal["degrees", "radians"]
    history_limit: int
    auto_save_history: bool
    scientific_mode: bool


class PreferencesUpdate(BaseModel):
    """Partial update; omitted fields keep their stored value."""

    theme: Literal["light", "dark"] | None = None
    decimal_places: int | None = Field(default=None, ge=0, le=15)
    angle_unit: Literal["degrees", "radians"] | None = None
    history_limit: int | None = Field(default=None, ge=1, le=1000)
    auto_save_history: bool | None = None
    scientific_mode: bool | None = None


# ---------------------------------------------------------------------------
# Statistics & admin
# ---------------------------------------------------------------------------


class MostUsedOperation(BaseModel):
    operation_type: str
    count: int


class DashboardResponse(BaseModel):
    total_calculations: int
    calculations_today: int
    most_used_operation: MostUsedOperation
    avg_calculations_per_day: float


class UsageStat(BaseModel):
    operation_type: str
    total_count: int
    date_recorded: str


class AnalyticsResponse(BaseModel):
    active_users: int
    total_calculations: int
    calculations_today: int
    active_days: int
    most_popular_operation: str | None = None


class CleanupRequest(BaseModel):
    days_to_keep: int = Field(default=365, ge=1)


class CleanupResponse(BaseModel):
    calculations_deleted: int
    error_logs_deleted: int


# ---------------------------------------------------------------------------
# Terminal sessions
# ---------------------------------------------------------------------------


class TerminalLine(BaseModel):
    text: str
    kind: str = Field(description="command | result | error | info")


class TerminalCommandRequest(BaseModel):
    command: str = Field(..., max_length=1000)


class TerminalCommandResponse(BaseModel):
    session_id: str
    state: str
    lines: list[TerminalLine]
    cleared: bool = False


class TerminalSessionResponse(BaseModel):
    session_id: str
    state: str
    variables: dict[str, float]
    history: list[str]
    output: list[TerminalLine]


# ---------------------------------------------------------------------------
# Agents
# ---------------------------------------------------------------------------


class AgentQueryRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=4000)
    temperature: float | None = Field(default=None, ge=0, le=2)


class CollaborateRequest(BaseModel):
    task: str = Field(..., min_length=1, max_length=4000)
    kimi_role: str | None = Field(default=None, max_length=500)
    gemini_role: str | None = Field(default=None, max_length=500)


class DebateRequest(BaseModel):
    topic: str = Field(..., min_length=1, max_length=2000)


# ---------------------------------------------------------------------------
# Health & errors
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    status: str = "healthy"
    database: str = "connected"
    agents_configured: bool = False
    active_sessions: int = 0
    analytics: AnalyticsResponse | None = None
    version: str = "1.0.0"


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str
    detail: str | None = None
