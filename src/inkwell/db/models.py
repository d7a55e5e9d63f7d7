"""Domain models for the Inkwell database layer."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from typing import Any

SOURCE_TYPES: frozenset[str] = frozenset(
    ["pdf", "youtube", "article", "audio", "text", "image"]
)
SOURCE_STATUSES: frozenset[str] = frozenset(["uploading", "processing", "ready", "failed"])
MESSAGE_ROLES: frozenset[str] = frozenset(["user", "assistant"])


@dataclass
class Source:
    id: str
    project_id: str
    title: str
    source_type: str
    raw_content: str | None = None
    location: str | None = None  # file path (pdf) or URL (article)
    status: str = "uploading"
    summary: str | None = None
    key_concepts: list[str] = field(default_factory=list)
    created_at: str | None = None

    def __post_init__(self) -> None:
        if self.source_type not in SOURCE_TYPES:
            raise ValueError(
                f"Unknown source type {self.source_type!r}. "
                f"Expected one of: {', '.join(sorted(SOURCE_TYPES))}"
            )
        if self.status not in SOURCE_STATUSES:
            raise ValueError(f"Unknown source status {self.status!r}")


@dataclass
class Chunk:
    id: str
    source_id: str
    chunk_index: int
    content: str
    embedding_model: str | None = None  # None until an embedding is stored
    created_at: str | None = None
    rowid: int | None = None  # set after insert; vec tables key on it

    @property
    def embedded(self) -> bool:
        return self.embedding_model is not None


@dataclass(frozen=True)
class Citation:
    """Pointer from an assistant message back to a retrieved chunk."""

    chunk_id: str
    source_id: str
    source_title: str
    snippet: str

    @classmethod
    def from_dict(cls, data: Any) -> Citation:
        """Build a Citation from a stored JSON object.

        Raises:
            ValueError: If *data* is not an object with all four string fields.
        """
        if not isinstance(data, dict):
            raise ValueError(f"Citation must be an object, got {type(data).__name__}")
        values: dict[str, str] = {}
        for name in ("chunk_id", "source_id", "source_title", "snippet"):
            value = data.get(name)
            if not isinstance(value, str):
                raise ValueError(f"Citation field {name!r} must be a string, got {value!r}")
            values[name] = value
        return cls(**values)

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


@dataclass
class ChatSession:
    id: str
    project_id: str
    title: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class ChatMessage:
    id: str
    session_id: str
    role: str
    content: str
    citations: list[Citation] | None = None  # assistant messages only
    created_at: str | None = None

    def __post_init__(self) -> None:
        if self.role not in MESSAGE_ROLES:
            raise ValueError(f"Unknown message role {self.role!r}")
        if self.role == "user" and self.citations:
            raise ValueError("User messages cannot carry citations")

    def citations_json(self) -> str | None:
        if self.citations is None:
            return None
        return json.dumps([c.to_dict() for c in self.citations])


@dataclass
class VoicePattern:
    id: str
    project_id: str
    category: str
    pattern: str
    frequency: int
    confidence_score: float
    context: str | None = None
    source_transcript_id: str | None = None
    created_at: str | None = None

    def __post_init__(self) -> None:
        if not 1 <= self.frequency <= 10:
            raise ValueError(f"frequency must be in [1, 10], got {self.frequency}")
        if not 0.0 <= self.confidence_score <= 1.0:
            raise ValueError(
                f"confidence_score must be in [0.0, 1.0], got {self.confidence_score}"
            )


@dataclass
class VoiceConfidenceAspect:
    project_id: str
    aspect: str
    current_score: int
    target_score: int
    transcripts_analyzed: int
    last_updated: str | None = None
