"""FastAPI application for the scientific calculator.

Provides REST endpoints for button-style and free-form calculations,
per-user history, memory, preferences and statistics, stateful terminal
sessions, and the OpenRouter agents demo.

Usage:
    uvicorn scicalc.api.app:app --reload          # Development
    python run.py --serve --port 8000             # Same, via the CLI
"""

from __future__ import annotations

import csv
import io
import sqlite3
import traceback
from contextlib import asynccontextmanager

import structlog
from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from scicalc.agents.openrouter import AgentInvocationError, AgentNotFoundError, list_agents
from scicalc.api.auth import hash_password, verify_password
from scicalc.api.dependencies import (
    check_rate_limit,
    get_db,
    get_db_optional,
    get_session_store,
    init_dependencies,
    require_agents,
)
from scicalc.api.metrics import (
    get_metrics_text,
    record_agent_request,
    record_calculation,
    record_terminal_command,
    set_terminal_sessions,
)
from scicalc.api.rate_limiter import RateLimiter
from scicalc.api.schemas import (
    AgentQueryRequest,
    AnalyticsResponse,
    CalculateRequest,
    CalculationRecord,
    CalculationResponse,
    CleanupRequest,
    CleanupResponse,
    CollaborateRequest,
    DashboardResponse,
    DebateRequest,
    ErrorResponse,
    EvaluateRequest,
    EvaluateResponse,
    HealthResponse,
    LoginRequest,
    MemoryRequest,
    MemoryResponse,
    Preferences,
    PreferencesUpdate,
    RegisterRequest,
    ScientificRequest,
    TerminalCommandRequest,
    TerminalCommandResponse,
    TerminalLine,
    TerminalSessionResponse,
    ThreePhaseRequest,
    ThreePhaseResponse,
    UsageStat,
    UserResponse,
)
from scicalc.api.sessions import TerminalSessionStore
from scicalc.calculator.operations import (
    CalculationResult,
    calculate_basic,
    calculate_scientific,
    classify_expression,
    three_phase_power,
)
from scicalc.config import get_app_settings, get_settings
from scicalc.graphs import orchestration
from scicalc.logging_config import setup_logging
from scicalc.persistence import repository
from scicalc.persistence.db import get_connection
from scicalc.schemas.agents import (
    AgentResponse,
    CollaborationResult,
    ConsultResult,
    DebateResult,
)
from scicalc.terminal.commands import RESERVED_NAMES, Terminal
from scicalc.terminal.errors import TerminalError
from scicalc.terminal.evaluator import compute, format_result
from scicalc.terminal.session import OutputKind
from scicalc.terminal.substitution import IDENTIFIER_RE

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# App lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the database and session store on startup, close on shutdown."""
    settings = get_settings()
    app_settings = get_app_settings()
    setup_logging(settings.log_level, json_output=settings.log_json)

    try:
        conn = get_connection(settings.database_path, check_same_thread=False)
    except sqlite3.Error:
        logger.exception("db_open_failed", path=settings.database_path)
        conn = None

    rate_limiter = RateLimiter(
        requests_per_minute=settings.rate_limit_rpm,
        requests_per_day=settings.rate_limit_daily,
    )
    sessions = TerminalSessionStore(
        max_sessions=app_settings.terminal.max_sessions,
        history_limit=app_settings.terminal.history_limit,
        precision=app_settings.terminal.precision,
        output_limit=app_settings.terminal.output_limit,
    )
    init_dependencies(settings, conn, rate_limiter, sessions)
    logger.info(
        "api_started",
        database=settings.database_path,
        agents_configured=settings.openrouter_configured,
        rate_limit_rpm=settings.rate_limit_rpm,
    )

    yield

    if conn is not None:
        conn.close()
    logger.info("api_shutdown")


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Scientific Calculator API",
    description=(
        "Scientific calculator with physics constants, stateful terminal "
        "sessions, calculation history and an OpenRouter agents demo."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

cors_origins = get_settings().cors_origin_list
if cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _require_user(conn: sqlite3.Connection, user_id: int) -> dict:
    user = repository.get_user_by_id(conn, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found.")
    return user


def _calculation_failed(
    conn: sqlite3.Connection | None,
    operation: str,
    exc: TerminalError,
    request_data: dict,
) -> HTTPException:
    """Record a failed calculation and build the 400 to raise."""
    record_calculation(operation, "error")
    if conn is not None:
        repository.log_error(
            conn,
            request_data.get("user_id"),
            type(exc).__name__,
            str(exc),
            request_data=request_data,
        )
    return HTTPException(status_code=400, detail=str(exc))


def _persist(
    conn: sqlite3.Connection | None,
    user_id: int | None,
    result: CalculationResult,
) -> int | None:
    """Save the calculation and bump usage stats when a user is given."""
    if user_id is None:
        return None
    if conn is None:
        raise HTTPException(status_code=503, detail="Database not available")
    _require_user(conn, user_id)
    saved = repository.save_calculation(
        conn, user_id, result.expression, result.result, result.operation, result.operands
    )
    repository.update_usage_stats(conn, user_id, result.operation)
    return saved["id"]


def _session_response(terminal: Terminal) -> TerminalSessionResponse:
    session = terminal.session
    return TerminalSessionResponse(
        session_id=session.session_id,
        state=session.state,
        variables=dict(session.variables),
        history=list(session.history),
        output=[TerminalLine(text=line.text, kind=line.kind) for line in session.output],
    )


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@app.post(
    "/api/register",
    response_model=UserResponse,
    status_code=201,
    responses={409: {"model": ErrorResponse}},
)
async def register(request: RegisterRequest, conn: sqlite3.Connection = Depends(get_db)):
    """Create a user account."""
    try:
        user = repository.create_user(
            conn, request.username, request.email.lower(), hash_password(request.password)
        )
    except sqlite3.IntegrityError:
        raise HTTPException(status_code=409, detail="Username or email already exists.") from None
    return UserResponse(**user)


@app.post("/api/login", response_model=UserResponse, responses={401: {"model": ErrorResponse}})
async def login(request: LoginRequest, conn: sqlite3.Connection = Depends(get_db)):
    user = repository.get_user_by_email(conn, request.email.lower())
    if user is None or not user["is_active"] or not verify_password(
        request.password, user["password_hash"]
    ):
        logger.info("login_failed")
        raise HTTPException(status_code=401, detail="Invalid email or password.")
    repository.update_last_login(conn, user["id"])
    return UserResponse(**repository.get_user_by_id(conn, user["id"]))


# ---------------------------------------------------------------------------
# Calculations
# ---------------------------------------------------------------------------


@app.post(
    "/api/calculate",
    response_model=CalculationResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def calculate(
    request: CalculateRequest,
    conn: sqlite3.Connection | None = Depends(get_db_optional),
):
    """Basic arithmetic: add, subtract, multiply, divide, sqrt."""
    try:
        result = calculate_basic(request.operation, request.a, request.b)
    except TerminalError as exc:
        raise _calculation_failed(conn, request.operation, exc, request.model_dump()) from None

    calculation_id = _persist(conn, request.user_id, result)
    record_calculation(result.operation, "ok")
    return CalculationResponse(**vars(result), calculation_id=calculation_id)


@app.post(
    "/api/calculate/scientific",
    response_model=CalculationResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def calculate_scientific_endpoint(
    request: ScientificRequest,
    conn: sqlite3.Connection | None = Depends(get_db_optional),
):
    """Trigonometry (degrees or radians), logarithms, exp and power."""
    try:
        result = calculate_scientific(
            request.operation, request.value, request.unit, request.exponent
        )
    except TerminalError as exc:
        raise _calculation_failed(conn, request.operation, exc, request.model_dump()) from None

    calculation_id = _persist(conn, request.user_id, result)
    record_calculation(result.operation, "ok")
    return CalculationResponse(**vars(result), calculation_id=calculation_id)


@app.post(
    "/api/calculate/three-phase",
    response_model=ThreePhaseResponse,
    responses={400: {"model": ErrorResponse}},
)
async def calculate_three_phase(request: ThreePhaseRequest):
    """Balanced three-phase real, apparent and reactive power."""
    try:
        result = three_phase_power(request.voltage, request.current, request.power_factor)
    except TerminalError as exc:
        record_calculation("three_phase", "error")
        raise HTTPException(status_code=400, detail=str(exc)) from None
    record_calculation("three_phase", "ok")
    return ThreePhaseResponse(**vars(result))


@app.post(
    "/api/evaluate",
    response_model=EvaluateResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def evaluate_expression(
    request: EvaluateRequest,
    conn: sqlite3.Connection | None = Depends(get_db_optional),
):
    """Evaluate one expression with physics constants and the given variables.

    Stateless: nothing is remembered between calls. Use the terminal
    session routes for assignments that persist.
    """
    expression = request.expression.strip()
    operation = classify_expression(expression)
    for name in request.variables:
        if not IDENTIFIER_RE.match(name) or name in RESERVED_NAMES:
            raise HTTPException(status_code=400, detail=f"Invalid variable name: '{name}'")

    try:
        value = compute(expression, variables=request.variables)
    except TerminalError as exc:
        raise _calculation_failed(conn, operation, exc, request.model_dump()) from None

    formatted = format_result(value, get_app_settings().terminal.precision)
    finite = formatted not in ("Infinity", "Error")
    calculation_id = None
    if finite:
        calculation_id = _persist(
            conn,
            request.user_id,
            CalculationResult(expression, float(formatted), operation, []),
        )
    record_calculation(operation, "ok" if finite else "non_finite")
    return EvaluateResponse(
        expression=expression,
        result=formatted,
        value=float(formatted) if finite else None,
        calculation_id=calculation_id,
    )


@app.get("/api/users/{user_id}/calculations", response_model=list[CalculationRecord])
async def list_user_calculations(
    user_id: int,
    limit: int | None = None,
    conn: sqlite3.Connection = Depends(get_db),
):
    _require_user(conn, user_id)
    if limit is None:
        limit = get_app_settings().history.calculation_limit
    return repository.get_calculations_by_user(conn, user_id, limit=max(1, limit))


@app.get(
    "/api/calculations/{calculation_id}",
    response_model=CalculationRecord,
    responses={404: {"model": ErrorResponse}},
)
async def get_calculation(calculation_id: int, conn: sqlite3.Connection = Depends(get_db)):
    calculation = repository.get_calculation(conn, calculation_id)
    if calculation is None:
        raise HTTPException(status_code=404, detail="Calculation not found.")
    return calculation


@app.delete("/api/calculations/{calculation_id}", responses={404: {"model": ErrorResponse}})
async def delete_calculation(
    calculation_id: int,
    user_id: int | None = None,
    conn: sqlite3.Connection = Depends(get_db),
):
    """Delete a calculation; with ``user_id`` only if it belongs to that user."""
    if not repository.delete_calculation(conn, calculation_id, user_id=user_id):
        raise HTTPException(status_code=404, detail="Calculation not found.")
    return {"calculation_id": calculation_id, "deleted": True}


@app.post(
    "/api/calculations/{calculation_id}/favorite",
    response_model=CalculationRecord,
    responses={404: {"model": ErrorResponse}},
)
async def toggle_favorite(
    calculation_id: int,
    user_id: int,
    conn: sqlite3.Connection = Depends(get_db),
):
    if not repository.toggle_favorite(conn, calculation_id, user_id):
        raise HTTPException(status_code=404, detail="Calculation not found.")
    return repository.get_calculation(conn, calculation_id)


# ---------------------------------------------------------------------------
# Memory & preferences
# ---------------------------------------------------------------------------


@app.get("/api/users/{user_id}/memory", response_model=MemoryResponse)
async def get_memory(user_id: int, conn: sqlite3.Connection = Depends(get_db)):
    _require_user(conn, user_id)
    return MemoryResponse(user_id=user_id, memory_value=repository.get_memory_value(conn, user_id))


@app.post("/api/users/{user_id}/memory", response_model=MemoryResponse)
async def set_memory(user_id: int, request: MemoryRequest, conn: sqlite3.Connection = Depends(get_db)):
    _require_user(conn, user_id)
    repository.set_memory_value(conn, user_id, request.value)
    return MemoryResponse(user_id=user_id, memory_value=request.value)


@app.delete("/api/users/{user_id}/memory", response_model=MemoryResponse)
async def clear_memory(user_id: int, conn: sqlite3.Connection = Depends(get_db)):
    _require_user(conn, user_id)
    repository.clear_memory(conn, user_id)
    return MemoryResponse(user_id=user_id, memory_value=0.0)


@app.get("/api/users/{user_id}/preferences", response_model=Preferences)
async def get_preferences(user_id: int, conn: sqlite3.Connection = Depends(get_db)):
    _require_user(conn, user_id)
    return repository.get_user_preferences(conn, user_id, get_app_settings().history.preferences)


@app.put("/api/users/{user_id}/preferences", response_model=Preferences)
async def update_preferences(
    user_id: int,
    request: PreferencesUpdate,
    conn: sqlite3.Connection = Depends(get_db),
):
    _require_user(conn, user_id)
    return repository.update_user_preferences(
        conn,
        user_id,
        request.model_dump(exclude_none=True),
        get_app_settings().history.preferences,
    )


# ---------------------------------------------------------------------------
# Statistics & export
# ---------------------------------------------------------------------------


@app.get("/api/users/{user_id}/dashboard", response_model=DashboardResponse)
async def dashboard(user_id: int, conn: sqlite3.Connection = Depends(get_db)):
    _require_user(conn, user_id)
    return repository.get_dashboard_stats(conn, user_id)


@app.get("/api/users/{user_id}/stats", response_model=list[UsageStat])
async def usage_stats(user_id: int, days: int = 30, conn: sqlite3.Connection = Depends(get_db)):
    _require_user(conn, user_id)
    return repository.get_usage_stats(conn, user_id, days=max(1, days))


@app.get("/api/users/{user_id}/export/{export_format}", responses={400: {"model": ErrorResponse}})
async def export_calculations(
    user_id: int,
    export_format: str,
    conn: sqlite3.Connection = Depends(get_db),
):
    """Download the user's history as ``json`` or ``csv``."""
    _require_user(conn, user_id)
    if export_format not in ("json", "csv"):
        raise HTTPException(status_code=400, detail="Unsupported format. Use 'json' or 'csv'.")

    limit = get_app_settings().history.admin_limit
    calculations = repository.get_calculations_by_user(conn, user_id, limit=limit)
    if export_format == "json":
        return calculations

    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(["id", "expression", "result", "operation_type", "is_favorite", "created_at"])
    for calc in calculations:
        writer.writerow(
            [
                calc["id"],
                calc["expression"],
                calc["result"],
                calc["operation_type"],
                calc["is_favorite"],
                calc["created_at"],
            ]
        )
    return Response(
        content=buffer.getvalue(),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=calculations_{user_id}.csv"},
    )


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


@app.get("/api/admin/analytics", response_model=AnalyticsResponse)
async def admin_analytics(conn: sqlite3.Connection = Depends(get_db)):
    return repository.get_analytics(conn)


@app.get("/api/admin/calculations", response_model=list[CalculationRecord])
async def admin_calculations(limit: int | None = None, conn: sqlite3.Connection = Depends(get_db)):
    if limit is None:
        limit = get_app_settings().history.admin_limit
    return repository.get_all_calculations(conn, limit=max(1, limit))


@app.post("/api/admin/cleanup", response_model=CleanupResponse)
async def admin_cleanup(request: CleanupRequest, conn: sqlite3.Connection = Depends(get_db)):
    return repository.cleanup(conn, days_to_keep=request.days_to_keep)


# ---------------------------------------------------------------------------
# Terminal sessions
# ---------------------------------------------------------------------------


@app.post("/api/terminal/sessions", response_model=TerminalCommandResponse, status_code=201)
async def open_terminal_session(store: TerminalSessionStore = Depends(get_session_store)):
    """Open a new terminal session. The response carries the welcome banner."""
    terminal = store.create()
    lines = terminal.open()
    set_terminal_sessions(len(store))
    return TerminalCommandResponse(
        session_id=terminal.session.session_id,
        state=terminal.state,
        lines=[TerminalLine(text=line.text, kind=line.kind) for line in lines],
    )


@app.post(
    "/api/terminal/sessions/{session_id}/commands",
    response_model=TerminalCommandResponse,
    responses={404: {"model": ErrorResponse}},
)
async def run_terminal_command(
    session_id: str,
    request: TerminalCommandRequest,
    store: TerminalSessionStore = Depends(get_session_store),
):
    """Execute one input line. Command errors come back as ``error`` lines, not HTTP errors."""
    terminal = store.get(session_id)
    if terminal is None:
        raise HTTPException(status_code=404, detail="Terminal session not found.")

    result = terminal.execute(request.command)
    if result.lines:
        failed = any(line.kind is OutputKind.ERROR for line in result.lines)
        record_terminal_command("error" if failed else "ok")
    return TerminalCommandResponse(
        session_id=session_id,
        state=terminal.state,
        lines=[TerminalLine(text=line.text, kind=line.kind) for line in result.lines],
        cleared=result.cleared,
    )


@app.get(
    "/api/terminal/sessions/{session_id}",
    response_model=TerminalSessionResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_terminal_session(
    session_id: str,
    store: TerminalSessionStore = Depends(get_session_store),
):
    terminal = store.get(session_id)
    if terminal is None:
        raise HTTPException(status_code=404, detail="Terminal session not found.")
    return _session_response(terminal)


@app.delete("/api/terminal/sessions/{session_id}", responses={404: {"model": ErrorResponse}})
async def close_terminal_session(
    session_id: str,
    store: TerminalSessionStore = Depends(get_session_store),
):
    if not store.delete(session_id):
        raise HTTPException(status_code=404, detail="Terminal session not found.")
    set_terminal_sessions(len(store))
    return {"session_id": session_id, "status": "closed"}


# ---------------------------------------------------------------------------
# Agents demo (OpenRouter)
# ---------------------------------------------------------------------------

_AGENT_ROUTE_DEPS = [Depends(require_agents), Depends(check_rate_limit)]
_AGENT_ERRORS = {
    429: {"model": ErrorResponse},
    502: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


def _upstream_failed(mode: str, exc: AgentInvocationError) -> HTTPException:
    record_agent_request(mode, "error")
    return HTTPException(status_code=502, detail=str(exc))


@app.get("/api/agents")
async def agents_index():
    """Available agents and their configured models."""
    return {"agents": list_agents(), "configured": get_settings().openrouter_configured}


@app.post(
    "/api/agents/both",
    response_model=ConsultResult,
    dependencies=_AGENT_ROUTE_DEPS,
    responses=_AGENT_ERRORS,
)
async def consult_both_agents(request: AgentQueryRequest):
    """Ask Kimi and Gemini the same question in parallel."""
    try:
        result = await orchestration.consult_both(request.query)
    except AgentInvocationError as exc:
        raise _upstream_failed("both", exc) from None
    record_agent_request("both", "ok")
    return result


@app.post(
    "/api/agents/collaborate",
    response_model=CollaborationResult,
    dependencies=_AGENT_ROUTE_DEPS,
    responses=_AGENT_ERRORS,
)
async def collaborate(request: CollaborateRequest):
    """Kimi analyses the task, then Gemini builds a solution on that analysis."""
    try:
        result = await orchestration.collaborative_task(
            request.task, request.kimi_role, request.gemini_role
        )
    except AgentInvocationError as exc:
        raise _upstream_failed("collaborate", exc) from None
    record_agent_request("collaborate", "ok")
    return result


@app.post(
    "/api/agents/debate",
    response_model=DebateResult,
    dependencies=_AGENT_ROUTE_DEPS,
    responses=_AGENT_ERRORS,
)
async def debate(request: DebateRequest):
    try:
        result = await orchestration.agent_debate(request.topic)
    except AgentInvocationError as exc:
        raise _upstream_failed("debate", exc) from None
    record_agent_request("debate", "ok")
    return result


@app.post(
    "/api/agents/{agent_key}",
    response_model=AgentResponse,
    dependencies=_AGENT_ROUTE_DEPS,
    responses={404: {"model": ErrorResponse}, **_AGENT_ERRORS},
)
async def ask_agent(agent_key: str, request: AgentQueryRequest):
    """Ask a single agent (``kimi`` or ``gemini``)."""
    try:
        result = await orchestration.single_agent(agent_key, request.query, request.temperature)
    except AgentNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from None
    except AgentInvocationError as exc:
        raise _upstream_failed(agent_key, exc) from None
    record_agent_request(agent_key, "ok")
    return result


# ---------------------------------------------------------------------------
# Health & Metrics
# ---------------------------------------------------------------------------


@app.get("/api/health", response_model=HealthResponse)
async def health_check(conn: sqlite3.Connection | None = Depends(get_db_optional)):
    """Health check for load balancers and monitoring."""
    store = get_session_store()
    settings = get_settings()
    if conn is None:
        return HealthResponse(
            status="degraded",
            database="unavailable",
            agents_configured=settings.openrouter_configured,
            active_sessions=len(store),
        )
    return HealthResponse(
        database="connected",
        agents_configured=settings.openrouter_configured,
        active_sessions=len(store),
        analytics=AnalyticsResponse(**repository.get_analytics(conn)),
    )


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception):
    """Record unexpected failures in error_logs and answer 500."""
    logger.error("unhandled_error", path=request.url.path, error=str(exc))
    conn = get_db_optional()
    if conn is not None:
        repository.log_error(
            conn,
            None,
            type(exc).__name__,
            str(exc),
            stack_trace="".join(traceback.format_exception(exc)),
            request_data={"method": request.method, "path": request.url.path},
        )
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.get("/api/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(
        content=get_metrics_text(),
        media_type="text/plain; charset=utf-8",
    )
