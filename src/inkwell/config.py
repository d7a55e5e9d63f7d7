"""Inkwell configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site, not in this module)
  2. Environment variables  (INKWELL_GENERATION_MODEL, INKWELL_EMBEDDING_MODEL)
  3. Per-project inkwell.yaml  (next to .inkwell.db)
  4. Global ~/.inkwell/config.yaml  (model defaults only, no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".inkwell"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "inkwell.yaml"

# Key names that look like credentials. Does NOT match max_tokens, token_budget.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["embedding", "generation", "retrieval", "chunking", "chat"]
)


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class EmbeddingCfg:
    """Embedding model and ingestion retry policy (inkwell.yaml: embedding:).

    Attributes:
        model: LiteLLM embedding model string. Must stay the same between the
            write path and the query path.
        dimensions: Vector size produced by *model*.
        timeout: Seconds before a single embedding call is abandoned.
        max_attempts: Attempts per chunk before it is left for a later retry.
        backoff: Initial delay in seconds between attempts (doubled each time).
        concurrency: Parallel embedding calls during ingestion (1 = sequential).
    """

    model: str = "openai/text-embedding-3-small"
    dimensions: int = 1536
    timeout: float = 30.0
    max_attempts: int = 3
    backoff: float = 1.0
    concurrency: int = 1


@dataclass
class GenerationCfg:
    """Completion model configuration (inkwell.yaml: generation:)."""

    model: str = "anthropic/claude-sonnet-4-20250514"
    max_tokens: int = 2_000
    timeout: float = 60.0
    analysis_model: str = "openai/gpt-4o-mini"


@dataclass
class RetrievalCfg:
    """Retrieval configuration (inkwell.yaml: retrieval:)."""

    top_k: int = 5
    match_threshold: float = 0.5
    token_budget: int = 8_192


@dataclass
class ChunkingCfg:
    """Sentence chunker sizing, in approximate tokens (inkwell.yaml: chunking:)."""

    chunk_size: int = 500
    overlap: int = 50
    chars_per_token: int = 4


@dataclass
class ChatCfg:
    """Conversation bounds (inkwell.yaml: chat:)."""

    history_limit: int = 10
    title_chars: int = 50
    snippet_chars: int = 200


@dataclass
class InkwellConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    generation: GenerationCfg = field(default_factory=GenerationCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    chat: ChatCfg = field(default_factory=ChatCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}' — ignored.",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: InkwellConfig) -> None:
    if cfg.embedding.dimensions < 1:
        raise ConfigError(f"embedding.dimensions must be >= 1, got {cfg.embedding.dimensions}")
    if cfg.embedding.max_attempts < 1:
        raise ConfigError(
            f"embedding.max_attempts must be >= 1, got {cfg.embedding.max_attempts}"
        )
    if cfg.embedding.concurrency < 1:
        raise ConfigError(f"embedding.concurrency must be >= 1, got {cfg.embedding.concurrency}")
    if cfg.retrieval.top_k < 1:
        raise ConfigError(f"retrieval.top_k must be >= 1, got {cfg.retrieval.top_k}")
    if not 0.0 <= cfg.retrieval.match_threshold <= 1.0:
        raise ConfigError(
            f"retrieval.match_threshold must be in [0, 1], got {cfg.retrieval.match_threshold}"
        )
    if cfg.chunking.overlap >= cfg.chunking.chunk_size:
        raise ConfigError("chunking.overlap must be smaller than chunking.chunk_size")


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _cfg_from_dict(data: dict[str, Any]) -> InkwellConfig:
    """Build an *InkwellConfig* from a merged raw YAML dict."""
    cfg = InkwellConfig()

    if "embedding" in data:
        e = data["embedding"]
        cfg.embedding = EmbeddingCfg(
            model=str(e.get("model", cfg.embedding.model)),
            dimensions=int(e.get("dimensions", cfg.embedding.dimensions)),
            timeout=float(e.get("timeout", cfg.embedding.timeout)),
            max_attempts=int(e.get("max_attempts", cfg.embedding.max_attempts)),
            backoff=float(e.get("backoff", cfg.embedding.backoff)),
            concurrency=int(e.get("concurrency", cfg.embedding.concurrency)),
        )

    if "generation" in data:
        g = data["generation"]
        cfg.generation = GenerationCfg(
            model=str(g.get("model", cfg.generation.model)),
            max_tokens=int(g.get("max_tokens", cfg.generation.max_tokens)),
            timeout=float(g.get("timeout", cfg.generation.timeout)),
            analysis_model=str(g.get("analysis_model", cfg.generation.analysis_model)),
        )

    if "retrieval" in data:
        r = data["retrieval"]
        cfg.retrieval = RetrievalCfg(
            top_k=int(r.get("top_k", cfg.retrieval.top_k)),
            match_threshold=float(r.get("match_threshold", cfg.retrieval.match_threshold)),
            token_budget=int(r.get("token_budget", cfg.retrieval.token_budget)),
        )

    if "chunking" in data:
        c = data["chunking"]
        cfg.chunking = ChunkingCfg(
            chunk_size=int(c.get("chunk_size", cfg.chunking.chunk_size)),
            overlap=int(c.get("overlap", cfg.chunking.overlap)),
            chars_per_token=int(c.get("chars_per_token", cfg.chunking.chars_per_token)),
        )

    if "chat" in data:
        ch = data["chat"]
        cfg.chat = ChatCfg(
            history_limit=int(ch.get("history_limit", cfg.chat.history_limit)),
            title_chars=int(ch.get("title_chars", cfg.chat.title_chars)),
            snippet_chars=int(ch.get("snippet_chars", cfg.chat.snippet_chars)),
        )

    return cfg


def _apply_env_overrides(cfg: InkwellConfig) -> InkwellConfig:
    """Apply INKWELL_* environment variable overrides."""
    if model := os.environ.get("INKWELL_GENERATION_MODEL"):
        cfg.generation.model = model
    if model := os.environ.get("INKWELL_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> InkwellConfig:
    """Load and return a merged *InkwellConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *inkwell.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If global config contains API-key-like fields, or a value
            is out of range.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _apply_env_overrides(_cfg_from_dict(merged))
    _validate(cfg)
    return cfg
