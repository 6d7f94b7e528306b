"""Repository functions for calculator persistence.

Each function takes a sqlite3.Connection and performs a single operation.
Connections are opened/closed by callers (the API lifespan or run.py).
All timestamps are ISO 8601 UTC strings; date arithmetic happens in Python.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import date, datetime, timedelta, timezone
from typing import Any

import structlog

from scicalc.config import PreferencesDefaults

logger = structlog.get_logger(__name__)

PREFERENCE_COLUMNS = tuple(PreferencesDefaults.model_fields)
_BOOL_PREFERENCES = {"auto_save_history", "scientific_mode"}


def _now() -> str:
    """Return current UTC time in ISO 8601 format."""
    return datetime.now(timezone.utc).isoformat()


def _today() -> str:
    return datetime.now(timezone.utc).date().isoformat()


def _calculation_from_row(row: sqlite3.Row) -> dict[str, Any]:
    data = dict(row)
    data["operands"] = json.loads(data.get("operands") or "[]")
    data["is_favorite"] = bool(data.get("is_favorite"))
    return data


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


def create_user(
    conn: sqlite3.Connection,
    username: str,
    email: str,
    password_hash: str,
) -> dict[str, Any]:
    """Insert a user. Raises sqlite3.IntegrityError on duplicate username/email."""
    created_at = _now()
    cursor = conn.execute(
        """INSERT INTO users (username, email, password_hash, created_at)
           VALUES (?, ?, ?, ?)""",
        (username, email, password_hash, created_at),
    )
    conn.commit()
    logger.info("user_created", user_id=cursor.lastrowid, username=username)
    return {
        "id": cursor.lastrowid,
        "username": username,
        "email": email,
        "created_at": created_at,
    }


def get_user_by_id(conn: sqlite3.Connection, user_id: int) -> dict[str, Any] | None:
    """Public user fields (no password hash)."""
    row = conn.execute(
        """SELECT id, username, email, created_at, last_login, is_active
           FROM users WHERE id = ?""",
        (user_id,),
    ).fetchone()
    return dict(row) if row else None


def get_user_by_email(conn: sqlite3.Connection, email: str) -> dict[str, Any] | None:
    """Full user row including password_hash, for login."""
    row = conn.execute("SELECT * FROM users WHERE email = ?", (email,)).fetchone()
    return dict(row) if row else None


def update_last_login(conn: sqlite3.Connection, user_id: int) -> None:
    conn.execute("UPDATE users SET last_login = ? WHERE id = ?", (_now(), user_id))
    conn.commit()


# ---------------------------------------------------------------------------
# Calculations
# ---------------------------------------------------------------------------


def save_calculation(
    conn: sqlite3.Connection,
    user_id: int | None,
    expression: str,
    result: float,
    operation_type: str,
    operands: list[float] | None = None,
) -> dict[str, Any]:
    """Save a calculation record. Returns the stored record."""
    operands = operands or []
    created_at = _now()
    cursor = conn.execute(
        """INSERT INTO calculations (user_id, expression, result, operation_type,
           operands, created_at)
           VALUES (?, ?, ?, ?, ?, ?)""",
        (user_id, expression, result, operation_type, json.dumps(operands), created_at),
    )
    conn.commit()
    logger.info(
        "calculation_saved",
        calculation_id=cursor.lastrowid,
        user_id=user_id,
        operation=operation_type,
    )
    return {
        "id": cursor.lastrowid,
        "user_id": user_id,
        "expression": expression,
        "result": result,
        "operation_type": operation_type,
        "operands": operands,
        "is_favorite": False,
        "created_at": created_at,
    }


def get_calculation(conn: sqlite3.Connection, calculation_id: int) -> dict[str, Any] | None:
    row = conn.execute(
        "SELECT * FROM calculations WHERE id = ?", (calculation_id,)
    ).fetchone()
    return _calculation_from_row(row) if row else None


def get_calculations_by_user(
    conn: sqlite3.Connection,
    user_id: int,
    limit: int = 50,
) -> list[dict[str, Any]]:
    """Most recent calculations for a user, newest first."""
    rows = conn.execute(
        """SELECT * FROM calculations
           WHERE user_id = ?
           ORDER BY created_at DESC, id DESC
           LIMIT ?""",
        (user_id, limit),
    ).fetchall()
    return [_calculation_from_row(row) for row in rows]


def get_all_calculations(conn: sqlite3.Connection, limit: int = 100) -> list[dict[str, Any]]:
    """Most recent calculations across all users, with the username joined in."""
    rows = conn.execute(
        """SELECT c.*, u.username
           FROM calculations c
           LEFT JOIN users u ON c.user_id = u.id
           ORDER BY c.created_at DESC, c.id DESC
           LIMIT ?""",
        (limit,),
    ).fetchall()
    return [_calculation_from_row(row) for row in rows]


def delete_calculation(
    conn: sqlite3.Connection,
    calculation_id: int,
    user_id: int | None = None,
) -> bool:
    """Delete a calculation, optionally only if it belongs to ``user_id``."""
    query = "DELETE FROM calculations WHERE id = ?"
    params: list = [calculation_id]
    if user_id is not None:
        query += " AND user_id = ?"
        params.append(user_id)
    cursor = conn.execute(query, params)
    conn.commit()
    return cursor.rowcount > 0


def toggle_favorite(conn: sqlite3.Connection, calculation_id: int, user_id: int) -> bool:
    """Flip the favourite flag. False when the calculation is not the user's."""
    cursor = conn.execute(
        """UPDATE calculations SET is_favorite = NOT is_favorite
           WHERE id = ? AND user_id = ?""",
        (calculation_id, user_id),
    )
    conn.commit()
    return cursor.rowcount > 0


# ---------------------------------------------------------------------------
# Memory register
# ---------------------------------------------------------------------------


def get_memory_value(conn: sqlite3.Connection, user_id: int) -> float:
    row = conn.execute(
        "SELECT memory_value FROM memory_storage WHERE user_id = ?", (user_id,)
    ).fetchone()
    return row["memory_value"] if row else 0.0


def set_memory_value(conn: sqlite3.Connection, user_id: int, value: float) -> None:
    conn.execute(
        """INSERT OR REPLACE INTO memory_storage (user_id, memory_value, updated_at)
           VALUES (?, ?, ?)""",
        (user_id, value, _now()),
    )
    conn.commit()


def clear_memory(conn: sqlite3.Connection, user_id: int) -> None:
    conn.execute("DELETE FROM memory_storage WHERE user_id = ?", (user_id,))
    conn.commit()


# ---------------------------------------------------------------------------
# Preferences
# ---------------------------------------------------------------------------


def get_user_preferences(
    conn: sqlite3.Connection,
    user_id: int,
    defaults: PreferencesDefaults | None = None,
) -> dict[str, Any]:
    """Stored preferences, or the defaults when the user never saved any."""
    row = conn.execute(
        "SELECT * FROM user_preferences WHERE user_id = ?", (user_id,)
    ).fetchone()
    if row is None:
        return (defaults or PreferencesDefaults()).model_dump()
    prefs = {col: row[col] for col in PREFERENCE_COLUMNS}
    for col in _BOOL_PREFERENCES:
        prefs[col] = bool(prefs[col])
    return prefs


def update_user_preferences(
    conn: sqlite3.Connection,
    user_id: int,
    preferences: dict[str, Any],
    defaults: PreferencesDefaults | None = None,
) -> dict[str, Any]:
    """Merge ``preferences`` over the stored row and save.

    A user with no stored row starts from ``defaults``, the same values
    ``get_user_preferences`` would have returned.

    Unknown keys raise ValueError; column names never come from the caller
    unchecked.
    """
    unknown = set(preferences) - set(PREFERENCE_COLUMNS)
    if unknown:
        raise ValueError(f"Unknown preference(s): {', '.join(sorted(unknown))}")

    merged = get_user_preferences(conn, user_id, defaults)
    merged.update(preferences)

    columns = ", ".join(PREFERENCE_COLUMNS)
    placeholders = ", ".join("?" for _ in PREFERENCE_COLUMNS)
    conn.execute(
        f"""INSERT OR REPLACE INTO user_preferences (user_id, {columns}, updated_at)
            VALUES (?, {placeholders}, ?)""",
        (user_id, *(merged[col] for col in PREFERENCE_COLUMNS), _now()),
    )
    conn.commit()
    return merged


# ---------------------------------------------------------------------------
# Usage statistics
# ---------------------------------------------------------------------------


def update_usage_stats(conn: sqlite3.Connection, user_id: int | None, operation_type: str) -> None:
    """Increment today's counter for (user, operation)."""
    conn.execute(
        """INSERT INTO usage_stats (user_id, operation_type, operation_count, date_recorded)
           VALUES (?, ?, 1, ?)
           ON CONFLICT (user_id, operation_type, date_recorded)
           DO UPDATE SET operation_count = operation_count + 1""",
        (user_id, operation_type, _today()),
    )
    conn.commit()


def get_usage_stats(
    conn: sqlite3.Connection,
    user_id: int | None = None,
    days: int = 30,
) -> list[dict[str, Any]]:
    """Per-day operation counts for the last ``days`` days."""
    cutoff = (datetime.now(timezone.utc).date() - timedelta(days=days)).isoformat()
    query = """
        SELECT operation_type, SUM(operation_count) AS total_count, date_recorded
        FROM usage_stats
        WHERE date_recorded >= ?
    """
    params: list = [cutoff]
    if user_id is not None:
        query += " AND user_id = ?"
        params.append(user_id)
    query += " GROUP BY operation_type, date_recorded ORDER BY date_recorded DESC, operation_type"
    return [dict(row) for row in conn.execute(query, params).fetchall()]


def get_dashboard_stats(conn: sqlite3.Connection, user_id: int | None = None) -> dict[str, Any]:
    """Totals, today's count, most used operation and average per day."""
    where = "WHERE user_id = ?" if user_id is not None else ""
    params: tuple = (user_id,) if user_id is not None else ()

    total = conn.execute(f"SELECT COUNT(*) FROM calculations {where}", params).fetchone()[0]

    today_clause = "AND" if where else "WHERE"
    today = conn.execute(
        f"SELECT COUNT(*) FROM calculations {where} {today_clause} substr(created_at, 1, 10) = ?",
        (*params, _today()),
    ).fetchone()[0]

    top = conn.execute(
        f"""SELECT operation_type, COUNT(*) AS count FROM calculations {where}
            GROUP BY operation_type ORDER BY count DESC, operation_type LIMIT 1""",
        params,
    ).fetchone()

    first = conn.execute(f"SELECT MIN(created_at) FROM calculations {where}", params).fetchone()[0]
    if first:
        first_day = date.fromisoformat(first[:10])
        span = (datetime.now(timezone.utc).date() - first_day).days
        avg_per_day = round(total / max(1, span), 2)
    else:
        avg_per_day = 0.0

    return {
        "total_calculations": total,
        "calculations_today": today,
        "most_used_operation": dict(top) if top else {"operation_type": "none", "count": 0},
        "avg_calculations_per_day": avg_per_day,
    }


def get_analytics(conn: sqlite3.Connection) -> dict[str, Any]:
    """System-wide figures for the admin endpoint and health check."""
    row = conn.execute(
        """SELECT
               (SELECT COUNT(*) FROM users WHERE is_active = 1) AS active_users,
               (SELECT COUNT(*) FROM calculations) AS total_calculations,
               (SELECT COUNT(*) FROM calculations
                   WHERE substr(created_at, 1, 10) = ?) AS calculations_today,
               (SELECT COUNT(DISTINCT substr(created_at, 1, 10)) FROM calculations) AS active_days,
               (SELECT operation_type FROM calculations
                   GROUP BY operation_type ORDER BY COUNT(*) DESC LIMIT 1) AS most_popular_operation""",
        (_today(),),
    ).fetchone()
    return dict(row)


# ---------------------------------------------------------------------------
# Error log & maintenance
# ---------------------------------------------------------------------------


def log_error(
    conn: sqlite3.Connection,
    user_id: int | None,
    error_type: str,
    error_message: str,
    stack_trace: str | None = None,
    request_data: Any = None,
) -> None:
    conn.execute(
        """INSERT INTO error_logs (user_id, error_type, error_message, stack_trace,
           request_data, created_at)
           VALUES (?, ?, ?, ?, ?, ?)""",
        (
            user_id,
            error_type,
            error_message,
            stack_trace,
            json.dumps(request_data, default=str),
            _now(),
        ),
    )
    conn.commit()


def cleanup(conn: sqlite3.Connection, days_to_keep: int = 365) -> dict[str, int]:
    """Delete old calculations (and error logs older than 90 days)."""
    now = datetime.now(timezone.utc)
    calc_cutoff = (now - timedelta(days=days_to_keep)).isoformat()
    error_cutoff = (now - timedelta(days=90)).isoformat()

    calcs = conn.execute("DELETE FROM calculations WHERE created_at < ?", (calc_cutoff,)).rowcount
    errors = conn.execute("DELETE FROM error_logs WHERE created_at < ?", (error_cutoff,)).rowcount
    conn.commit()
    logger.info("db_cleanup", calculations_deleted=calcs, error_logs_deleted=errors)
    return {"calculations_deleted": calcs, "error_logs_deleted": errors}
