"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from inkwell.db.connection import Database
from inkwell.db.repository import Repository
from inkwell.db.schema import initialize


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".inkwell.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def repo(tmp_db):
    return Repository(tmp_db)
