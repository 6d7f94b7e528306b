"""Tests for persistence layer (SQLite DB + repository functions)."""

from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from scicalc.config import PreferencesDefaults
from scicalc.persistence.db import get_connection
from scicalc.persistence.repository import (
    cleanup,
    clear_memory,
    create_user,
    delete_calculation,
    get_all_calculations,
    get_analytics,
    get_calculation,
    get_calculations_by_user,
    get_dashboard_stats,
    get_memory_value,
    get_usage_stats,
    get_user_by_email,
    get_user_by_id,
    get_user_preferences,
    log_error,
    save_calculation,
    set_memory_value,
    toggle_favorite,
    update_last_login,
    update_usage_stats,
    update_user_preferences,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _create_test_user(conn: sqlite3.Connection, username: str = "ada") -> int:
    return create_user(conn, username, f"{username}@example.com", "hash")["id"]


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------


class TestSchema:
    def test_tables_created(self, conn):
        tables = {
            row[0]
            for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
        }
        assert {
            "users",
            "calculations",
            "memory_storage",
            "user_preferences",
            "usage_stats",
            "error_logs",
        } <= tables

    def test_file_database_created_with_parent_dir(self, tmp_path: Path):
        path = tmp_path / "nested" / "calc.db"
        connection = get_connection(path)
        connection.close()
        assert path.exists()

    def test_migration_adds_is_favorite(self, tmp_path: Path):
        path = tmp_path / "old.db"
        legacy = sqlite3.connect(path)
        legacy.execute(
            """CREATE TABLE calculations (
                   id INTEGER PRIMARY KEY AUTOINCREMENT,
                   user_id INTEGER,
                   expression TEXT NOT NULL,
                   result REAL NOT NULL,
                   operation_type TEXT NOT NULL,
                   operands TEXT NOT NULL DEFAULT '[]',
                   created_at TEXT NOT NULL
               )"""
        )
        legacy.commit()
        legacy.close()

        connection = get_connection(path)
        columns = {row[1] for row in connection.execute("PRAGMA table_info(calculations)")}
        connection.close()
        assert "is_favorite" in columns


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class TestUsers:
    def test_create_and_fetch(self, conn):
        user_id = _create_test_user(conn)
        user = get_user_by_id(conn, user_id)
        assert user["username"] == "ada"
        assert "password_hash" not in user

    def test_fetch_by_email_includes_hash(self, conn):
        _create_test_user(conn)
        assert get_user_by_email(conn, "ada@example.com")["password_hash"] == "hash"

    def test_duplicate_rejected(self, conn):
        _create_test_user(conn)
        with pytest.raises(sqlite3.IntegrityError):
            _create_test_user(conn)

    def test_last_login(self, conn):
        user_id = _create_test_user(conn)
        assert get_user_by_id(conn, user_id)["last_login"] is None
        update_last_login(conn, user_id)
        assert get_user_by_id(conn, user_id)["last_login"] is not None

    def test_missing_user(self, conn):
        assert get_user_by_id(conn, 999) is None
        assert get_user_by_email(conn, "nobody@example.com") is None


# ---------------------------------------------------------------------------
# Calculations
# ---------------------------------------------------------------------------


class TestCalculations:
    def test_save_and_get(self, conn):
        user_id = _create_test_user(conn)
        saved = save_calculation(conn, user_id, "5 + 3", 8.0, "add", [5, 3])
        fetched = get_calculation(conn, saved["id"])
        assert fetched["expression"] == "5 + 3"
        assert fetched["operands"] == [5, 3]
        assert fetched["is_favorite"] is False

    def test_by_user_newest_first_with_limit(self, conn):
        user_id = _create_test_user(conn)
        for i in range(5):
            save_calculation(conn, user_id, f"{i} + 0", float(i), "add")
        calcs = get_calculations_by_user(conn, user_id, limit=3)
        assert [c["result"] for c in calcs] == [4.0, 3.0, 2.0]

    def test_all_calculations_join_username(self, conn):
        user_id = _create_test_user(conn)
        save_calculation(conn, user_id, "1 + 1", 2.0, "add")
        save_calculation(conn, None, "2 + 2", 4.0, "add")
        calcs = get_all_calculations(conn)
        assert [c["username"] for c in calcs] == [None, "ada"]

    def test_delete_only_own(self, conn):
        owner = _create_test_user(conn, "ada")
        other = _create_test_user(conn, "bob")
        calc_id = save_calculation(conn, owner, "1 + 1", 2.0, "add")["id"]
        assert delete_calculation(conn, calc_id, user_id=other) is False
        assert delete_calculation(conn, calc_id, user_id=owner) is True
        assert get_calculation(conn, calc_id) is None

    def test_toggle_favorite(self, conn):
        user_id = _create_test_user(conn)
        calc_id = save_calculation(conn, user_id, "1 + 1", 2.0, "add")["id"]
        assert toggle_favorite(conn, calc_id, user_id) is True
        assert get_calculation(conn, calc_id)["is_favorite"] is True
        toggle_favorite(conn, calc_id, user_id)
        assert get_calculation(conn, calc_id)["is_favorite"] is False

    def test_toggle_favorite_wrong_user(self, conn):
        user_id = _create_test_user(conn)
        calc_id = save_calculation(conn, user_id, "1 + 1", 2.0, "add")["id"]
        assert toggle_favorite(conn, calc_id, user_id + 1) is False

    def test_deleting_user_cascades(self, conn):
        user_id = _create_test_user(conn)
        save_calculation(conn, user_id, "1 + 1", 2.0, "add")
        conn.execute("DELETE FROM users WHERE id = ?", (user_id,))
        conn.commit()
        assert get_all_calculations(conn) == []


# ---------------------------------------------------------------------------
# Memory & preferences
# ---------------------------------------------------------------------------


class TestMemory:
    def test_default_zero(self, conn):
        assert get_memory_value(conn, _create_test_user(conn)) == 0.0

    def test_set_and_clear(self, conn):
        user_id = _create_test_user(conn)
        set_memory_value(conn, user_id, 42.5)
        assert get_memory_value(conn, user_id) == 42.5
        set_memory_value(conn, user_id, 1.0)
        assert get_memory_value(conn, user_id) == 1.0
        clear_memory(conn, user_id)
        assert get_memory_value(conn, user_id) == 0.0


class TestPreferences:
    def test_defaults(self, conn):
        prefs = get_user_preferences(conn, _create_test_user(conn))
        assert prefs == {
            "theme": "light",
            "decimal_places": 10,
            "angle_unit": "degrees",
            "history_limit": 50,
            "auto_save_history": True,
            "scientific_mode": False,
        }

    def test_update_merges(self, conn):
        user_id = _create_test_user(conn)
        update_user_preferences(conn, user_id, {"theme": "dark"})
        update_user_preferences(conn, user_id, {"scientific_mode": True})
        prefs = get_user_preferences(conn, user_id)
        assert prefs["theme"] == "dark"
        assert prefs["scientific_mode"] is True
        assert prefs["decimal_places"] == 10

    def test_update_starts_from_configured_defaults(self, conn):
        user_id = _create_test_user(conn)
        defaults = PreferencesDefaults(theme="dark", angle_unit="radians")
        prefs = update_user_preferences(conn, user_id, {"decimal_places": 4}, defaults)
        assert prefs["theme"] == "dark"
        assert prefs["angle_unit"] == "radians"
        assert prefs["decimal_places"] == 4
        assert get_user_preferences(conn, user_id) == prefs

    def test_unknown_key_rejected(self, conn):
        user_id = _create_test_user(conn)
        with pytest.raises(ValueError, match="Unknown preference"):
            update_user_preferences(conn, user_id, {"theme": "dark", "password_hash": "x"})


# ---------------------------------------------------------------------------
# Statistics & maintenance
# ---------------------------------------------------------------------------


class TestStats:
    def test_usage_counter_upserts(self, conn):
        user_id = _create_test_user(conn)
        update_usage_stats(conn, user_id, "add")
        update_usage_stats(conn, user_id, "add")
        update_usage_stats(conn, user_id, "sqrt")
        stats = {s["operation_type"]: s["total_count"] for s in get_usage_stats(conn, user_id)}
        assert stats == {"add": 2, "sqrt": 1}

    def test_dashboard(self, conn):
        user_id = _create_test_user(conn)
        save_calculation(conn, user_id, "1 + 1", 2.0, "add")
        save_calculation(conn, user_id, "2 + 2", 4.0, "add")
        save_calculation(conn, user_id, "√4", 2.0, "sqrt")
        stats = get_dashboard_stats(conn, user_id)
        assert stats["total_calculations"] == 3
        assert stats["calculations_today"] == 3
        assert stats["most_used_operation"] == {"operation_type": "add", "count": 2}
        assert stats["avg_calculations_per_day"] == 3

    def test_dashboard_empty(self, conn):
        stats = get_dashboard_stats(conn, _create_test_user(conn))
        assert stats["total_calculations"] == 0
        assert stats["most_used_operation"] == {"operation_type": "none", "count": 0}
        assert stats["avg_calculations_per_day"] == 0.0

    def test_analytics(self, conn):
        user_id = _create_test_user(conn)
        save_calculation(conn, user_id, "√4", 2.0, "sqrt")
        analytics = get_analytics(conn)
        assert analytics["active_users"] == 1
        assert analytics["total_calculations"] == 1
        assert analytics["most_popular_operation"] == "sqrt"

    def test_cleanup_removes_old_rows(self, conn):
        user_id = _create_test_user(conn)
        save_calculation(conn, user_id, "1 + 1", 2.0, "add")
        old = (datetime.now(timezone.utc) - timedelta(days=400)).isoformat()
        conn.execute(
            """INSERT INTO calculations (user_id, expression, result, operation_type, created_at)
               VALUES (?, '0 + 0', 0, 'add', ?)""",
            (user_id, old),
        )
        log_error(conn, user_id, "DomainError", "Division by zero", request_data={"a": 1})
        conn.execute("UPDATE error_logs SET created_at = ?", (old,))
        conn.commit()

        assert cleanup(conn, days_to_keep=365) == {"calculations_deleted": 1, "error_logs_deleted": 1}
        assert len(get_calculations_by_user(conn, user_id)) == 1
