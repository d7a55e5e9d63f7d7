"""Shared CLI plumbing: console, DB opening, config loading, capability wiring."""

from __future__ import annotations

import functools
import sqlite3
import warnings
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from inkwell.cli.errors import err_config, err_no_api_key, err_no_db
from inkwell.config import ConfigError, InkwellConfig, load_config
from inkwell.db.connection import Database
from inkwell.db.repository import Repository
from inkwell.db.schema import initialize
from inkwell.db.vectors import ensure_vec_table, model_to_slug
from inkwell.rag.assembler import TokenCounter
from inkwell.rag.llm_client import count_tokens, litellm_embedder, validate_api_key
from inkwell.rag.retriever import EmbeddingIndex

console = Console()

DEFAULT_DB = Path(".inkwell.db")
DEFAULT_PROJECT = "default"

DbOption = Annotated[Path, typer.Option("--db", help="Path to .inkwell.db.")]
ProjectOption = Annotated[
    str, typer.Option("--project", "-p", help="Project the sources and chats belong to.")
]


def open_db(db_path: Path, *, create: bool = False) -> sqlite3.Connection:
    """Open (and migrate) the database, exiting with a hint if it is missing."""
    if not create and not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)
    conn = Database(db_path).connect()
    initialize(conn)
    return conn


def load_config_or_exit(db_path: Path) -> InkwellConfig:
    """Load config from the directory holding *db_path*; exit 1 on a bad value."""
    try:
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            cfg = load_config(project_dir=db_path.resolve().parent)
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from exc
    for w in caught:
        console.print(f"[yellow]Warning:[/] {w.message}")
    return cfg


def require_api_key(model: str) -> None:
    try:
        validate_api_key(model)
    except EnvironmentError as exc:
        provider = model.split("/")[0] if "/" in model else "openai"
        console.print(err_no_api_key(provider))
        raise typer.Exit(1) from exc


def vec_table_for(conn: sqlite3.Connection, cfg: InkwellConfig) -> str:
    return ensure_vec_table(conn, model_to_slug(cfg.embedding.model), cfg.embedding.dimensions)


def build_index(repo: Repository, cfg: InkwellConfig) -> EmbeddingIndex:
    return EmbeddingIndex.for_model(
        repo,
        litellm_embedder(cfg.embedding),
        cfg.embedding.model,
        match_threshold=cfg.retrieval.match_threshold,
    )


def token_counter(cfg: InkwellConfig) -> TokenCounter:
    return functools.partial(count_tokens, cfg.generation.model)


def short_id(value: str) -> str:
    return value[:8]
