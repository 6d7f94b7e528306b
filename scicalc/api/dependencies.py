"""FastAPI dependency injection for the calculator API.

Shared instances are created once in the app lifespan and injected into
route handlers via ``Depends()``.
"""

from __future__ import annotations

import sqlite3

from fastapi import HTTPException, Request

from scicalc.api.metrics import record_rate_limit_hit
from scicalc.api.rate_limiter import RateLimiter
from scicalc.api.sessions import TerminalSessionStore
from scicalc.config import Settings


# ---------------------------------------------------------------------------
# Singleton instances (initialized in app lifespan)
# ---------------------------------------------------------------------------

_settings: Settings | None = None
_conn: sqlite3.Connection | None = None
_rate_limiter: RateLimiter | None = None
_sessions: TerminalSessionStore | None = None


def init_dependencies(
    settings: Settings,
    conn: sqlite3.Connection | None,
    rate_limiter: RateLimiter,
    sessions: TerminalSessionStore,
) -> None:
    """Initialize shared dependency instances. Called once at app startup."""
    global _settings, _conn, _rate_limiter, _sessions
    _settings = settings
    _conn = conn
    _rate_limiter = rate_limiter
    _sessions = sessions


# ---------------------------------------------------------------------------
# FastAPI dependencies
# ---------------------------------------------------------------------------


def get_db() -> sqlite3.Connection:
    """The shared SQLite connection. 503 when the database failed to open."""
    if _conn is None:
        raise HTTPException(status_code=503, detail="Database not available")
    return _conn


def get_db_optional() -> sqlite3.Connection | None:
    return _conn


def get_session_store() -> TerminalSessionStore:
    if _sessions is None:
        raise HTTPException(status_code=500, detail="Session store not initialized")
    return _sessions


async def require_agents() -> None:
    """503 unless an OpenRouter API key is configured."""
    if _settings is None or not _settings.openrouter_configured:
        raise HTTPException(
            status_code=503,
            detail="OpenRouter API key not configured. Set OPENROUTER_API_KEY.",
        )


async def check_rate_limit(request: Request) -> None:
    """Per-client rate limit. Raises 429 with Retry-After if exceeded."""
    if _rate_limiter is None:
        return

    client_id = request.client.host if request.client else "anonymous"
    allowed, retry_after, limit_type = _rate_limiter.check(client_id)
    if not allowed:
        record_rate_limit_hit(limit_type)
        raise HTTPException(
            status_code=429,
            detail="Rate limit exceeded. Try again later.",
            headers={"Retry-After": str(int(retry_after) + 1)},
        )
