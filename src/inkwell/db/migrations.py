"""Forward-only migration runner for Inkwell's database schema.

Vec tables (vec_chunks_*) are NOT migration-managed — use ensure_vec_table().
"""

from __future__ import annotations

import sqlite3

# schema_version is the bootstrap table, created before migrations run.
_CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    applied_at  DATETIME NOT NULL DEFAULT (datetime('now'))
)
"""

# Millisecond timestamps: messages are ordered by created_at within a session.
_NOW = "(strftime('%Y-%m-%d %H:%M:%f', 'now'))"

_V1_SQL = f"""
CREATE TABLE IF NOT EXISTS sources (
    id              TEXT PRIMARY KEY,
    project_id      TEXT NOT NULL,
    title           TEXT NOT NULL,
    source_type     TEXT NOT NULL
                    CHECK (source_type IN ('pdf', 'youtube', 'article', 'audio', 'text', 'image')),
    location        TEXT,
    raw_content     TEXT,
    status          TEXT NOT NULL DEFAULT 'uploading'
                    CHECK (status IN ('uploading', 'processing', 'ready', 'failed')),
    summary         TEXT,
    key_concepts    TEXT NOT NULL DEFAULT '[]',
    created_at      DATETIME NOT NULL DEFAULT {_NOW}
);

CREATE INDEX IF NOT EXISTS idx_sources_project ON sources(project_id);

CREATE TABLE IF NOT EXISTS chunks (
    -- Explicit INTEGER PRIMARY KEY keeps rowid stable (vec tables key on it).
    pk              INTEGER PRIMARY KEY,
    id              TEXT NOT NULL UNIQUE,
    source_id       TEXT NOT NULL REFERENCES sources(id) ON DELETE CASCADE,
    chunk_index     INTEGER NOT NULL,
    content         TEXT NOT NULL,
    embedding_model TEXT,
    created_at      DATETIME NOT NULL DEFAULT {_NOW},
    UNIQUE (source_id, chunk_index)
);

CREATE TABLE IF NOT EXISTS chat_sessions (
    id              TEXT PRIMARY KEY,
    project_id      TEXT NOT NULL,
    title           TEXT,
    created_at      DATETIME NOT NULL DEFAULT {_NOW},
    updated_at      DATETIME NOT NULL DEFAULT {_NOW}
);

CREATE TABLE IF NOT EXISTS chat_messages (
    id              TEXT PRIMARY KEY,
    session_id      TEXT NOT NULL REFERENCES chat_sessions(id) ON DELETE CASCADE,
    role            TEXT NOT NULL CHECK (role IN ('user', 'assistant')),
    content         TEXT NOT NULL,
    citations       TEXT,
    created_at      DATETIME NOT NULL DEFAULT {_NOW}
);

CREATE INDEX IF NOT EXISTS idx_chat_messages_session ON chat_messages(session_id, created_at);

CREATE TABLE IF NOT EXISTS voice_patterns (
    id                      TEXT PRIMARY KEY,
    project_id              TEXT NOT NULL,
    category                TEXT NOT NULL,
    pattern                 TEXT NOT NULL,
    context                 TEXT,
    frequency               INTEGER NOT NULL CHECK (frequency BETWEEN 1 AND 10),
    confidence_score        REAL NOT NULL CHECK (confidence_score BETWEEN 0.0 AND 1.0),
    source_transcript_id    TEXT,
    created_at              DATETIME NOT NULL DEFAULT {_NOW}
);

CREATE INDEX IF NOT EXISTS idx_voice_patterns_project ON voice_patterns(project_id);

CREATE TABLE IF NOT EXISTS voice_confidence (
    project_id              TEXT NOT NULL,
    aspect                  TEXT NOT NULL,
    current_score           INTEGER NOT NULL,
    target_score            INTEGER NOT NULL,
    transcripts_analyzed    INTEGER NOT NULL,
    last_updated            DATETIME NOT NULL DEFAULT {_NOW},
    PRIMARY KEY (project_id, aspect)
);
"""

# Append-only. Each entry: (version: int, sql: str).
# executescript() issues an implicit COMMIT before running.
MIGRATIONS: list[tuple[int, str]] = [
    (1, _V1_SQL),
]


def run_migrations(conn: sqlite3.Connection) -> None:
    """Apply all pending migrations in ascending version order.

    Idempotent: safe to call on a database at any version.
    Vec tables are NOT managed here — use ensure_vec_table() instead.
    """
    conn.execute(_CREATE_SCHEMA_VERSION)
    conn.commit()

    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    current = row[0] if row[0] is not None else 0

    for version, sql in MIGRATIONS:
        if version > current:
            conn.executescript(sql)
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )
            conn.commit()
