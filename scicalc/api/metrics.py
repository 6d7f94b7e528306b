"""Prometheus metrics for the calculator API.

Exposed in text format at /api/metrics.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, generate_latest

CALCULATIONS = Counter(
    "scicalc_calculations_total",
    "Calculations handled by the REST endpoints",
    ["operation", "status"],
)
TERMINAL_COMMANDS = Counter(
    "scicalc_terminal_commands_total",
    "Commands executed in terminal sessions",
    ["outcome"],
)
TERMINAL_SESSIONS = Gauge(
    "scicalc_terminal_sessions",
    "Currently open terminal sessions",
)
AGENT_REQUESTS = Counter(
    "scicalc_agent_requests_total",
    "Agent requests by mode",
    ["mode", "status"],
)
RATE_LIMIT_HITS = Counter(
    "scicalc_rate_limit_hits_total",
    "Rate limit rejections",
    ["limit_type"],
)


def record_calculation(operation: str, status: str) -> None:
    CALCULATIONS.labels(operation=operation, status=status).inc()


def record_terminal_command(outcome: str) -> None:
    TERMINAL_COMMANDS.labels(outcome=outcome).inc()


def set_terminal_sessions(count: int) -> None:
    TERMINAL_SESSIONS.set(count)


def record_agent_request(mode: str, status: str) -> None:
    AGENT_REQUESTS.labels(mode=mode, status=status).inc()


def record_rate_limit_hit(limit_type: str) -> None:
    RATE_LIMIT_HITS.labels(limit_type=limit_type).inc()


def get_metrics_text() -> str:
    return generate_latest().decode("utf-8")
