"""SQLite persistence for calculation history, users and preferences.

The connection is a plain ``sqlite3.Connection`` with ``sqlite3.Row`` rows,
WAL journaling and foreign keys on. Tables are created on first use.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

import structlog

logger = structlog.get_logger(__name__)

DB_PATH = Path("data/calculator.db")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS users (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    username        TEXT NOT NULL UNIQUE,
    email           TEXT NOT NULL UNIQUE,
    password_hash   TEXT NOT NULL,
    created_at      TEXT NOT NULL,
    last_login      TEXT,
    is_active       INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS calculations (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id         INTEGER REFERENCES users(id) ON DELETE CASCADE,
    expression      TEXT NOT NULL,
    result          REAL NOT NULL,
    operation_type  TEXT NOT NULL,
    operands        TEXT NOT NULL DEFAULT '[]',
    is_favorite     INTEGER NOT NULL DEFAULT 0,
    created_at      TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_calculations_user
    ON calculations (user_id, created_at);

CREATE TABLE IF NOT EXISTS memory_storage (
    user_id         INTEGER PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
    memory_value    REAL NOT NULL DEFAULT 0,
    updated_at      TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS user_preferences (
    user_id           INTEGER PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
    theme             TEXT NOT NULL DEFAULT 'light',
    decimal_places    INTEGER NOT NULL DEFAULT 10,
    angle_unit        TEXT NOT NULL DEFAULT 'degrees',
    history_limit     INTEGER NOT NULL DEFAULT 50,
    auto_save_history INTEGER NOT NULL DEFAULT 1,
    scientific_mode   INTEGER NOT NULL DEFAULT 0,
    updated_at        TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS usage_stats (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id         INTEGER REFERENCES users(id) ON DELETE CASCADE,
    operation_type  TEXT NOT NULL,
    operation_count INTEGER NOT NULL DEFAULT 0,
    date_recorded   TEXT NOT NULL,
    UNIQUE (user_id, operation_type, date_recorded)
);

CREATE TABLE IF NOT EXISTS error_logs (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id         INTEGER,
    error_type      TEXT NOT NULL,
    error_message   TEXT NOT NULL,
    stack_trace     TEXT,
    request_data    TEXT,
    created_at      TEXT NOT NULL
);
"""


# ---------------------------------------------------------------------------
# Connection factory
# ---------------------------------------------------------------------------


def get_connection(
    db_path: str | Path | None = None,
    check_same_thread: bool = True,
) -> sqlite3.Connection:
    """Get or create a SQLite connection. Auto-creates tables on first use.

    ``":memory:"`` gives a throwaway database. The API server passes
    ``check_same_thread=False`` because FastAPI runs sync work in a
    threadpool; it serialises access itself.
    """
    path_str = str(db_path) if db_path else str(DB_PATH)
    if path_str != ":memory:":
        Path(path_str).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(path_str, check_same_thread=check_same_thread)
    conn.row_factory = sqlite3.Row
    if path_str != ":memory:":
        conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    _ensure_tables(conn)
    return conn


# ---------------------------------------------------------------------------
# Table setup
# ---------------------------------------------------------------------------


def _ensure_tables(conn: sqlite3.Connection) -> None:
    """Create tables if they don't exist. Runs migrations for schema changes."""
    conn.executescript(SCHEMA_SQL)
    # Migration: databases created before favourites existed
    columns = {row[1] for row in conn.execute("PRAGMA table_info(calculations)").fetchall()}
    if "is_favorite" not in columns:
        conn.execute(
            "ALTER TABLE calculations ADD COLUMN is_favorite INTEGER NOT NULL DEFAULT 0"
        )
        logger.info("db_migrated", column="calculations.is_favorite")
    conn.commit()
