"""Repository pattern for all Inkwell database operations.

Single interface for: sources, chunks, vec embeddings, chat sessions and
messages, voice patterns and voice confidence rollups.
Vec tables are model-managed (ensure_vec_table); repository handles read + write.
"""

from __future__ import annotations

import json
import sqlite3

from inkwell.db.models import (
    ChatMessage,
    ChatSession,
    Chunk,
    Citation,
    Source,
    VoiceConfidenceAspect,
    VoicePattern,
)

_NOW = "strftime('%Y-%m-%d %H:%M:%f', 'now')"

_SOURCE_COLUMNS = (
    "id, project_id, title, source_type, location, raw_content, status, "
    "summary, key_concepts, created_at"
)
_CHUNK_COLUMNS = "pk AS rowid, id, source_id, chunk_index, content, embedding_model, created_at"
_MESSAGE_COLUMNS = "id, session_id, role, content, citations, created_at"


class Repository:
    """Data access layer for all Inkwell database entities.

    Wraps an open sqlite3.Connection. The connection is owned by the caller and
    must be closed after use.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with sqlite-vec loaded and schema
                initialised (see inkwell.db.schema.initialize).
        """
        self._conn = conn

    @property
    def conn(self) -> sqlite3.Connection:
        return self._conn

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    def add_source(self, source: Source) -> None:
        """Insert a new source record."""
        self._conn.execute(
            """
            INSERT INTO sources (id, project_id, title, source_type, location,
                                 raw_content, status, summary, key_concepts)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                source.id,
                source.project_id,
                source.title,
                source.source_type,
                source.location,
                source.raw_content,
                source.status,
                source.summary,
                json.dumps(source.key_concepts),
            ),
        )
        self._conn.commit()

    def get_source(self, source_id: str) -> Source | None:
        """Return a source by ID, or None if not found."""
        row = self._conn.execute(
            f"SELECT {_SOURCE_COLUMNS} FROM sources WHERE id = ?", (source_id,)
        ).fetchone()
        return _row_to_source(row) if row else None

    def list_sources(self, project_id: str | None = None) -> list[Source]:
        """Return sources ordered by creation time (oldest first).

        Args:
            project_id: Restrict to one project; None lists every project.
        """
        if project_id is None:
            rows = self._conn.execute(
                f"SELECT {_SOURCE_COLUMNS} FROM sources ORDER BY created_at, rowid"
            ).fetchall()
        else:
            rows = self._conn.execute(
                f"SELECT {_SOURCE_COLUMNS} FROM sources WHERE project_id = ? "
                "ORDER BY created_at, rowid",
                (project_id,),
            ).fetchall()
        return [_row_to_source(r) for r in rows]

    def set_source_status(self, source_id: str, status: str) -> None:
        self._conn.execute("UPDATE sources SET status = ? WHERE id = ?", (status, source_id))
        self._conn.commit()

    def set_source_content(self, source_id: str, raw_content: str) -> None:
        """Store extracted raw text for a source."""
        self._conn.execute(
            "UPDATE sources SET raw_content = ? WHERE id = ?", (raw_content, source_id)
        )
        self._conn.commit()

    def set_source_analysis(
        self, source_id: str, summary: str, key_concepts: list[str]
    ) -> None:
        self._conn.execute(
            "UPDATE sources SET summary = ?, key_concepts = ? WHERE id = ?",
            (summary, json.dumps(key_concepts), source_id),
        )
        self._conn.commit()

    def delete_source(self, source_id: str) -> None:
        """Delete a source, its chunks (FK cascade) and their vectors.

        Vec tables are virtual and cannot take part in the cascade, so their
        rows are removed first.
        """
        self.delete_embeddings_by_source(source_id)
        self._conn.execute("DELETE FROM sources WHERE id = ?", (source_id,))
        self._conn.commit()

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def add_chunk(self, chunk: Chunk) -> int:
        """Insert a chunk. Returns the new rowid."""
        cur = self._conn.execute(
            """
            INSERT INTO chunks (id, source_id, chunk_index, content, embedding_model)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                chunk.id,
                chunk.source_id,
                chunk.chunk_index,
                chunk.content,
                chunk.embedding_model,
            ),
        )
        self._conn.commit()
        return cur.lastrowid

    def get_chunk_by_rowid(self, rowid: int) -> Chunk | None:
        row = self._conn.execute(
            f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE rowid = ?", (rowid,)
        ).fetchone()
        return _row_to_chunk(row) if row else None

    def list_chunks_by_source(self, source_id: str) -> list[Chunk]:
        """Return all chunks of a source in document order."""
        rows = self._conn.execute(
            f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE source_id = ? ORDER BY chunk_index",
            (source_id,),
        ).fetchall()
        return [_row_to_chunk(r) for r in rows]

    def list_pending_chunks(self, source_id: str) -> list[Chunk]:
        """Return chunks of a source that have no stored embedding yet."""
        rows = self._conn.execute(
            f"""
            SELECT {_CHUNK_COLUMNS} FROM chunks
            WHERE source_id = ? AND embedding_model IS NULL
            ORDER BY chunk_index
            """,
            (source_id,),
        ).fetchall()
        return [_row_to_chunk(r) for r in rows]

    def count_chunks_by_source(self, source_id: str) -> int:
        return self._conn.execute(
            "SELECT COUNT(*) FROM chunks WHERE source_id = ?", (source_id,)
        ).fetchone()[0]

    def count_pending_chunks(self, source_id: str) -> int:
        return self._conn.execute(
            "SELECT COUNT(*) FROM chunks WHERE source_id = ? AND embedding_model IS NULL",
            (source_id,),
        ).fetchone()[0]

    def list_project_chunks(
        self, project_id: str, limit: int
    ) -> list[tuple[Chunk, Source]]:
        """Return up to *limit* chunks of *project_id* with their sources.

        No relevance ordering: rows come back in storage order.
        """
        rows = self._conn.execute(
            f"""
            SELECT c.rowid AS rowid, c.id AS id, c.source_id AS source_id,
                   c.chunk_index AS chunk_index, c.content AS content,
                   c.embedding_model AS embedding_model, c.created_at AS created_at
            FROM chunks c JOIN sources s ON s.id = c.source_id
            WHERE s.project_id = ?
            ORDER BY c.rowid
            LIMIT ?
            """,
            (project_id, limit),
        ).fetchall()
        return self._attach_sources([_row_to_chunk(r) for r in rows])

    def get_chunks_with_sources(self, rowids: list[int]) -> dict[int, tuple[Chunk, Source]]:
        """Return {rowid: (chunk, source)} for the given chunk rowids."""
        if not rowids:
            return {}
        placeholders = ",".join("?" * len(rowids))
        rows = self._conn.execute(
            f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE rowid IN ({placeholders})",
            rowids,
        ).fetchall()
        pairs = self._attach_sources([_row_to_chunk(r) for r in rows])
        return {chunk.rowid: (chunk, source) for chunk, source in pairs}

    def _attach_sources(self, chunks: list[Chunk]) -> list[tuple[Chunk, Source]]:
        cache: dict[str, Source | None] = {}
        result: list[tuple[Chunk, Source]] = []
        for chunk in chunks:
            if chunk.source_id not in cache:
                cache[chunk.source_id] = self.get_source(chunk.source_id)
            source = cache[chunk.source_id]
            if source is not None:
                result.append((chunk, source))
        return result

    # ------------------------------------------------------------------
    # Vec embeddings
    # ------------------------------------------------------------------

    def add_embedding(
        self,
        table: str,
        rowid: int,
        project_id: str,
        embedding: list[float],
        model: str,
    ) -> None:
        """Store a chunk vector and mark the chunk as embedded with *model*."""
        self._conn.execute(
            f"INSERT INTO {table}(rowid, project_id, embedding) VALUES (?, ?, ?)",
            (rowid, project_id, json.dumps(embedding)),
        )
        self._conn.execute(
            "UPDATE chunks SET embedding_model = ? WHERE rowid = ?", (model, rowid)
        )
        self._conn.commit()

    def search_vec(
        self, table: str, project_id: str, embedding: list[float], limit: int
    ) -> list[tuple[int, float]]:
        """KNN search inside one project partition.

        Returns (rowid, cosine distance) pairs, nearest first. sqlite3 errors
        (missing table, extension problems) propagate to the caller.
        """
        rows = self._conn.execute(
            f"""
            SELECT rowid, distance FROM {table}
            WHERE embedding MATCH ? AND k = ? AND project_id = ?
            ORDER BY distance
            """,
            (json.dumps(embedding), limit, project_id),
        ).fetchall()
        return [(r["rowid"], r["distance"]) for r in rows]

    def delete_embeddings_by_source(self, source_id: str) -> int:
        """Delete all vec embeddings for *source_id* from every vec table.

        Returns the total number of embedding rows deleted across all vec tables.
        """
        rowids = [
            r[0]
            for r in self._conn.execute(
                "SELECT rowid FROM chunks WHERE source_id = ?", (source_id,)
            ).fetchall()
        ]
        if not rowids:
            return 0

        vec_tables = [
            r[0]
            for r in self._conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name LIKE 'vec_chunks_%'"
            ).fetchall()
        ]

        total_deleted = 0
        placeholders = ",".join("?" * len(rowids))
        for table in vec_tables:
            cur = self._conn.execute(
                f"DELETE FROM [{table}] WHERE rowid IN ({placeholders})",  # noqa: S608
                rowids,
            )
            total_deleted += cur.rowcount

        self._conn.commit()
        return total_deleted

    # ------------------------------------------------------------------
    # Chat sessions
    # ------------------------------------------------------------------

    def add_session(self, session: ChatSession) -> None:
        self._conn.execute(
            "INSERT INTO chat_sessions (id, project_id, title) VALUES (?, ?, ?)",
            (session.id, session.project_id, session.title),
        )
        self._conn.commit()

    def get_session(self, session_id: str) -> ChatSession | None:
        row = self._conn.execute(
            "SELECT id, project_id, title, created_at, updated_at "
            "FROM chat_sessions WHERE id = ?",
            (session_id,),
        ).fetchone()
        return _row_to_session(row) if row else None

    def list_sessions(self, project_id: str) -> list[ChatSession]:
        """Return a project's sessions, most recently active first."""
        rows = self._conn.execute(
            """
            SELECT id, project_id, title, created_at, updated_at FROM chat_sessions
            WHERE project_id = ?
            ORDER BY updated_at DESC, rowid DESC
            """,
            (project_id,),
        ).fetchall()
        return [_row_to_session(r) for r in rows]

    def find_session_ids(self, prefix: str) -> list[str]:
        """Return ids of sessions whose id starts with *prefix*."""
        rows = self._conn.execute(
            "SELECT id FROM chat_sessions WHERE substr(id, 1, ?) = ?", (len(prefix), prefix)
        ).fetchall()
        return [r["id"] for r in rows]

    def touch_session(self, session_id: str) -> None:
        """Set a session's updated_at to now (last write wins)."""
        self._conn.execute(
            f"UPDATE chat_sessions SET updated_at = {_NOW} WHERE id = ?", (session_id,)
        )
        self._conn.commit()

    def delete_session(self, session_id: str) -> bool:
        """Delete a session and (via cascade) its messages. Returns False if missing."""
        cur = self._conn.execute("DELETE FROM chat_sessions WHERE id = ?", (session_id,))
        self._conn.commit()
        return cur.rowcount > 0

    # ------------------------------------------------------------------
    # Chat messages
    # ------------------------------------------------------------------

    def add_message(self, message: ChatMessage) -> ChatMessage:
        """Insert a message and return it with its stored timestamp."""
        self._conn.execute(
            """
            INSERT INTO chat_messages (id, session_id, role, content, citations)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                message.id,
                message.session_id,
                message.role,
                message.content,
                message.citations_json(),
            ),
        )
        self._conn.commit()
        row = self._conn.execute(
            f"SELECT {_MESSAGE_COLUMNS} FROM chat_messages WHERE id = ?", (message.id,)
        ).fetchone()
        return _row_to_message(row)

    def count_messages(self, session_id: str) -> int:
        row = self._conn.execute(
            "SELECT COUNT(*) FROM chat_messages WHERE session_id = ?", (session_id,)
        ).fetchone()
        return row[0] if row else 0

    def list_messages(self, session_id: str) -> list[ChatMessage]:
        """Return every message of a session, oldest first."""
        rows = self._conn.execute(
            f"""
            SELECT {_MESSAGE_COLUMNS} FROM chat_messages
            WHERE session_id = ?
            ORDER BY created_at, rowid
            """,
            (session_id,),
        ).fetchall()
        return [_row_to_message(r) for r in rows]

    def recent_messages(self, session_id: str, limit: int) -> list[ChatMessage]:
        """Return the last *limit* messages of a session, oldest first."""
        rows = self._conn.execute(
            f"""
            SELECT {_MESSAGE_COLUMNS} FROM chat_messages
            WHERE session_id = ?
            ORDER BY created_at DESC, rowid DESC
            LIMIT ?
            """,
            (session_id, limit),
        ).fetchall()
        return [_row_to_message(r) for r in reversed(rows)]

    # ------------------------------------------------------------------
    # Voice patterns + confidence
    # ------------------------------------------------------------------

    def add_patterns(self, patterns: list[VoicePattern], *, replace: bool = False) -> None:
        """Insert voice patterns in a single transaction.

        With *replace*, patterns already stored for the same
        (project, transcript) pairs are deleted first.
        """
        with self._conn:
            if replace:
                self._conn.executemany(
                    "DELETE FROM voice_patterns "
                    "WHERE project_id = ? AND source_transcript_id = ?",
                    sorted(
                        {
                            (p.project_id, p.source_transcript_id)
                            for p in patterns
                            if p.source_transcript_id is not None
                        }
                    ),
                )
            self._conn.executemany(
                """
                INSERT INTO voice_patterns (id, project_id, category, pattern, context,
                                            frequency, confidence_score, source_transcript_id)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        p.id,
                        p.project_id,
                        p.category,
                        p.pattern,
                        p.context,
                        p.frequency,
                        p.confidence_score,
                        p.source_transcript_id,
                    )
                    for p in patterns
                ],
            )

    def list_patterns(self, project_id: str) -> list[VoicePattern]:
        rows = self._conn.execute(
            """
            SELECT id, project_id, category, pattern, context, frequency,
                   confidence_score, source_transcript_id, created_at
            FROM voice_patterns WHERE project_id = ?
            ORDER BY created_at, rowid
            """,
            (project_id,),
        ).fetchall()
        return [_row_to_pattern(r) for r in rows]

    def upsert_confidence(self, aspect: VoiceConfidenceAspect) -> None:
        """Insert or replace one (project, aspect) rollup row.

        last_updated only moves when a value actually changes, so recomputing
        unchanged evidence leaves the row byte-identical.
        """
        self._conn.execute(
            f"""
            INSERT INTO voice_confidence (project_id, aspect, current_score, target_score,
                                          transcripts_analyzed)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(project_id, aspect) DO UPDATE SET
                current_score = excluded.current_score,
                target_score = excluded.target_score,
                transcripts_analyzed = excluded.transcripts_analyzed,
                last_updated = {_NOW}
            WHERE current_score != excluded.current_score
               OR target_score != excluded.target_score
               OR transcripts_analyzed != excluded.transcripts_analyzed
            """,
            (
                aspect.project_id,
                aspect.aspect,
                aspect.current_score,
                aspect.target_score,
                aspect.transcripts_analyzed,
            ),
        )
        self._conn.commit()

    def list_confidence(self, project_id: str) -> list[VoiceConfidenceAspect]:
        """Return a project's aspect rows ordered by aspect name."""
        rows = self._conn.execute(
            """
            SELECT project_id, aspect, current_score, target_score,
                   transcripts_analyzed, last_updated
            FROM voice_confidence WHERE project_id = ?
            ORDER BY aspect
            """,
            (project_id,),
        ).fetchall()
        return [
            VoiceConfidenceAspect(
                project_id=r["project_id"],
                aspect=r["aspect"],
                current_score=r["current_score"],
                target_score=r["target_score"],
                transcripts_analyzed=r["transcripts_analyzed"],
                last_updated=r["last_updated"],
            )
            for r in rows
        ]


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------


def _row_to_source(row: sqlite3.Row) -> Source:
    return Source(
        id=row["id"],
        project_id=row["project_id"],
        title=row["title"],
        source_type=row["source_type"],
        location=row["location"],
        raw_content=row["raw_content"],
        status=row["status"],
        summary=row["summary"],
        key_concepts=json.loads(row["key_concepts"] or "[]"),
        created_at=row["created_at"],
    )


def _row_to_chunk(row: sqlite3.Row) -> Chunk:
    return Chunk(
        rowid=row["rowid"],
        id=row["id"],
        source_id=row["source_id"],
        chunk_index=row["chunk_index"],
        content=row["content"],
        embedding_model=row["embedding_model"],
        created_at=row["created_at"],
    )


def _row_to_session(row: sqlite3.Row) -> ChatSession:
    return ChatSession(
        id=row["id"],
        project_id=row["project_id"],
        title=row["title"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_message(row: sqlite3.Row) -> ChatMessage:
    raw = row["citations"]
    citations = None
    if raw is not None:
        citations = [Citation.from_dict(c) for c in json.loads(raw)]
    return ChatMessage(
        id=row["id"],
        session_id=row["session_id"],
        role=row["role"],
        content=row["content"],
        citations=citations,
        created_at=row["created_at"],
    )


def _row_to_pattern(row: sqlite3.Row) -> VoicePattern:
    return VoicePattern(
        id=row["id"],
        project_id=row["project_id"],
        category=row["category"],
        pattern=row["pattern"],
        context=row["context"],
        frequency=row["frequency"],
        confidence_score=row["confidence_score"],
        source_transcript_id=row["source_transcript_id"],
        created_at=row["created_at"],
    )
