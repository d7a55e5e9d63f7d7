"""Tests for the forward-only migration runner."""

from __future__ import annotations

import sqlite3

import pytest

from inkwell.db.connection import Database
from inkwell.db.migrations import MIGRATIONS, run_migrations


def _fresh_conn(tmp_path):
    """Open a new connection without running migrations."""
    return Database(tmp_path / "test.db").connect()


def _table_exists(conn, name: str) -> bool:
    return conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (name,)
    ).fetchone() is not None


def test_run_migrations_creates_all_tables(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    for table in (
        "schema_version",
        "sources",
        "chunks",
        "chat_sessions",
        "chat_messages",
        "voice_patterns",
        "voice_confidence",
    ):
        assert _table_exists(conn, table), table
    conn.close()


def test_run_migrations_records_latest_version(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    version = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()[0]
    assert version == MIGRATIONS[-1][0]
    conn.close()


def test_run_migrations_idempotent(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    run_migrations(conn)
    count = conn.execute("SELECT COUNT(*) FROM schema_version").fetchone()[0]
    assert count == len(MIGRATIONS)
    conn.close()


def test_migrations_are_append_only_and_ordered():
    versions = [v for v, _ in MIGRATIONS]
    assert versions == sorted(versions)
    assert len(set(versions)) == len(versions)


def test_source_type_check_constraint(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    with pytest.raises(sqlite3.IntegrityError):
        conn.execute(
            "INSERT INTO sources (id, project_id, title, source_type) VALUES (?, ?, ?, ?)",
            ("s1", "p1", "Doc", "spreadsheet"),
        )
    conn.close()


def test_voice_pattern_frequency_check_constraint(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    with pytest.raises(sqlite3.IntegrityError):
        conn.execute(
            "INSERT INTO voice_patterns (id, project_id, category, pattern, frequency, "
            "confidence_score) VALUES (?, ?, ?, ?, ?, ?)",
            ("v1", "p1", "phrase", "you know", 11, 0.5),
        )
    conn.close()
